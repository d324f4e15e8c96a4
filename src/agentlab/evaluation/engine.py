"""Evaluation engine.

Owns evaluation suites and their runs, and executes cases against an agent
through the remote backend: open a session, stream the answer, close the
session, then judge the answer.
"""

import asyncio
import logging
import math
import uuid
from collections.abc import Sequence
from datetime import datetime

from pydantic import TypeAdapter

from agentlab.exceptions import ConfigurationError
from agentlab.judge.judge import OutputJudge
from agentlab.models.agent import AgentConfig, TestCase
from agentlab.models.config import EvaluationSettings
from agentlab.models.evaluation import (
    EvaluationCase,
    EvaluationRun,
    EvaluationSuite,
    TestResult,
)
from agentlab.persistence.storage import Slot, StateStore
from agentlab.remote.client import RemoteExecutionClient

logger = logging.getLogger(__name__)

SUITE_SESSION_TITLE = "Eval Run"
TEST_LAB_SESSION_TITLE = "Test Lab"

_SUITES_ADAPTER = TypeAdapter(list[EvaluationSuite])
_RUNS_ADAPTER = TypeAdapter(list[EvaluationRun])


def overall_score(results: Sequence[TestResult]) -> int:
    """Mean of the result scores rounded half up, or 0 without results."""
    if not results:
        return 0
    mean = sum(r.score for r in results) / len(results)
    return math.floor(mean + 0.5)


class EvaluationEngine:
    """Suite management and the case runner."""

    def __init__(
        self,
        store: StateStore,
        judge: OutputJudge,
        remote: RemoteExecutionClient | None,
        settings: EvaluationSettings | None = None,
    ) -> None:
        """Initialize the engine and load suites and runs.

        Args:
            store: State store holding the suite and run slots.
            judge: Judge used to grade every case.
            remote: Remote backend client, or None when not configured.
            settings: Runner settings.
        """
        self._store = store
        self._judge = judge
        self._remote = remote
        self._settings = settings or EvaluationSettings()
        self._suites: list[EvaluationSuite] = store.load(Slot.EVAL_SUITES, _SUITES_ADAPTER, list)
        self._runs: list[EvaluationRun] = store.load(Slot.EVAL_RUNS, _RUNS_ADAPTER, list)
        self._is_running = False

    @property
    def suites(self) -> list[EvaluationSuite]:
        """Suites, newest first."""
        return list(self._suites)

    @property
    def runs(self) -> list[EvaluationRun]:
        """Runs, newest first."""
        return list(self._runs)

    @property
    def is_running(self) -> bool:
        """Whether a suite run is in progress."""
        return self._is_running

    def _save_suites(self) -> None:
        self._store.save(Slot.EVAL_SUITES, _SUITES_ADAPTER, self._suites)

    def _save_runs(self) -> None:
        self._store.save(Slot.EVAL_RUNS, _RUNS_ADAPTER, self._runs)

    def get_suite(self, suite_id: str) -> EvaluationSuite | None:
        """Look up a suite by id."""
        return next((s for s in self._suites if s.id == suite_id), None)

    def create_suite(self, name: str, description: str = "") -> str:
        """Create an empty suite and return its id."""
        now = datetime.now()
        suite = EvaluationSuite(
            id=uuid.uuid4().hex,
            name=name,
            description=description,
            created_at=now,
            updated_at=now,
        )
        self._suites.insert(0, suite)
        self._save_suites()
        return suite.id

    def _update(self, suite_id: str, **changes: object) -> None:
        for index, suite in enumerate(self._suites):
            if suite.id == suite_id:
                self._suites[index] = suite.model_copy(
                    update={**changes, "updated_at": datetime.now()}
                )
                self._save_suites()
                return
        logger.debug("Ignoring update for unknown suite %s", suite_id)

    def update_suite(
        self,
        suite_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
    ) -> None:
        """Rename or re-describe a suite."""
        changes: dict[str, object] = {}
        if name is not None:
            changes["name"] = name
        if description is not None:
            changes["description"] = description
        self._update(suite_id, **changes)

    def update_suite_cases(self, suite_id: str, cases: list[EvaluationCase]) -> None:
        """Replace a suite's cases."""
        self._update(suite_id, cases=list(cases))

    def delete_suite(self, suite_id: str) -> None:
        """Delete a suite together with all of its runs."""
        self._suites = [s for s in self._suites if s.id != suite_id]
        self._runs = [r for r in self._runs if r.suite_id != suite_id]
        self._save_suites()
        self._save_runs()

    def get_runs_by_suite(self, suite_id: str) -> list[EvaluationRun]:
        """Runs of one suite, newest first."""
        runs = [r for r in self._runs if r.suite_id == suite_id]
        return sorted(runs, key=lambda r: r.timestamp, reverse=True)

    def _require_remote(self) -> RemoteExecutionClient:
        if self._remote is None:
            msg = "Remote service URL not configured."
            raise ConfigurationError(msg)
        return self._remote

    async def run_suite(self, suite_id: str, agent: AgentConfig) -> EvaluationRun | None:
        """Execute every case of a suite against an agent and record the run.

        Args:
            suite_id: Suite to execute.
            agent: Agent whose live configuration is evaluated.

        Returns:
            The recorded run, or None when the suite is missing or empty.

        Raises:
            ConfigurationError: If the remote backend is not configured.
        """
        suite = self.get_suite(suite_id)
        if suite is None or not suite.cases:
            return None

        remote = self._require_remote()
        self._is_running = True
        try:
            results = await self._run_cases(remote, suite.cases, agent, SUITE_SESSION_TITLE)
        finally:
            self._is_running = False

        run = EvaluationRun(
            id=uuid.uuid4().hex,
            suite_id=suite.id,
            suite_name_snapshot=suite.name,
            agent_id=agent.id,
            agent_name_snapshot=agent.name,
            agent_version_snapshot=agent.current_version,
            timestamp=datetime.now(),
            overall_score=overall_score(results),
            results=tuple(results),
        )
        self._runs.insert(0, run)
        self._save_runs()
        logger.info(
            "Suite %s scored %d against agent %s (%d/%d cases judged)",
            suite.name,
            run.overall_score,
            agent.id,
            len(results),
            len(suite.cases),
        )
        return run

    async def run_test_cases(self, agent: AgentConfig) -> dict[str, TestResult]:
        """Run an agent's embedded test cases without recording a run.

        Raises:
            ConfigurationError: If the remote backend is not configured.
        """
        if not agent.test_cases:
            return {}
        remote = self._require_remote()
        results = await self._run_cases(remote, agent.test_cases, agent, TEST_LAB_SESSION_TITLE)
        return {r.test_case_id: r for r in results if r.test_case_id is not None}

    async def _run_cases(
        self,
        remote: RemoteExecutionClient,
        cases: Sequence[EvaluationCase | TestCase],
        agent: AgentConfig,
        session_title: str,
    ) -> list[TestResult]:
        """Run cases with bounded concurrency, keeping case order in the results."""
        semaphore = asyncio.Semaphore(self._settings.max_concurrency)

        async def guarded(case: EvaluationCase | TestCase) -> TestResult | None:
            async with semaphore:
                try:
                    return await self._run_case(remote, case, agent, session_title)
                except Exception:
                    logger.exception("Evaluation case %s failed", case.id)
                    return None

        runnable = [case for case in cases if case.input.strip()]
        outcomes = await asyncio.gather(*(guarded(case) for case in runnable))
        return [result for result in outcomes if result is not None]

    async def _run_case(
        self,
        remote: RemoteExecutionClient,
        case: EvaluationCase | TestCase,
        agent: AgentConfig,
        session_title: str,
    ) -> TestResult:
        session = await remote.create_session(agent.id, session_title)
        try:
            actual_output = await self._generate(remote, agent.id, session.session_id, case.input)
        finally:
            try:
                await remote.delete_session(session.session_id)
            except Exception as e:
                logger.warning("Failed to delete evaluation session %s: %s", session.session_id, e)

        result = await self._judge.evaluate_test_case(
            case.input,
            actual_output,
            case.expected_output or "",
            agent.system_instruction,
        )
        return result.model_copy(update={"test_case_id": case.id})

    @staticmethod
    async def _generate(
        remote: RemoteExecutionClient,
        agent_id: str,
        session_id: str,
        input_text: str,
    ) -> str:
        """Stream one answer; remote errors become ``Error: ...`` output."""
        output = ""

        def on_chunk(text: str) -> None:
            nonlocal output
            output = text

        def on_complete(text: str, metrics: dict[str, object] | None) -> None:
            nonlocal output
            output = text

        def on_error(error: Exception) -> None:
            nonlocal output
            output = f"Error: {error}"

        await remote.create_agent_run_stream(
            agent_id, session_id, input_text, on_chunk, on_complete, on_error
        )
        return output
