"""Output judge implementation.

Grades agent outputs with an LLM. The judge never raises: transport and
parse failures produce a well-formed zero-score result instead.
"""

import logging

from agentlab.judge.prompts import build_case_prompt, build_performance_prompt
from agentlab.models.agent import AgentConfig
from agentlab.models.chat import Message as ChatMessage
from agentlab.models.evaluation import TestResult
from agentlab.models.judgment import (
    PASS_THRESHOLD,
    JudgeVerdict,
    PerformanceEvaluation,
    PerformanceScores,
)
from agentlab.providers.base import LLMProvider, Message

logger = logging.getLogger(__name__)

FAILURE_REASONING = "Evaluation failed due to API error or parsing issue."
NOT_CONFIGURED_REASONING = "Judge backend not configured."
EXACT_MATCH_REASONING = "Actual output is identical to the expected output."


def _clamp(value: float, upper: int) -> int:
    return max(0, min(upper, round(value)))


class OutputJudge:
    """LLM-powered judge for agent outputs.

    Two shapes of case judging share one pass rule (``score >= 70``):
    reference-based when an expected output exists, reference-free
    otherwise.
    """

    def __init__(self, provider: LLMProvider | None) -> None:
        """Initialize the judge.

        Args:
            provider: LLM provider used for grading, or None when unconfigured.
        """
        self._provider = provider

    @property
    def is_configured(self) -> bool:
        """Whether a grading backend is available."""
        return self._provider is not None

    async def evaluate_test_case(
        self,
        input_text: str,
        actual_output: str,
        expected_output: str = "",
        system_instruction: str | None = None,
    ) -> TestResult:
        """Score an output, always returning a result.

        Args:
            input_text: The user input the agent answered.
            actual_output: What the agent produced.
            expected_output: Golden answer, or empty for reference-free grading.
            system_instruction: The agent's instruction, given as context.

        Returns:
            TestResult with score, pass flag and reasoning.
        """
        if expected_output.strip() and actual_output.strip() == expected_output.strip():
            return TestResult(
                actual_output=actual_output,
                score=100,
                passed=True,
                reasoning=EXACT_MATCH_REASONING,
            )

        if self._provider is None:
            return self._fallback(actual_output, NOT_CONFIGURED_REASONING)

        prompt = build_case_prompt(input_text, actual_output, expected_output, system_instruction)
        try:
            verdict = await self._provider.generate_structured(
                messages=[Message(role="user", content=prompt)],
                response_schema=JudgeVerdict,
            )
        except Exception:
            logger.exception("Judge evaluation failed")
            return self._fallback(actual_output, FAILURE_REASONING)

        score = _clamp(verdict.score, 100)
        return TestResult(
            actual_output=actual_output,
            score=score,
            passed=score >= PASS_THRESHOLD,
            reasoning=verdict.reasoning or "Evaluation parsed.",
        )

    @staticmethod
    def _fallback(actual_output: str, reasoning: str) -> TestResult:
        return TestResult(actual_output=actual_output, score=0, passed=False, reasoning=reasoning)

    async def evaluate_performance(
        self,
        agent: AgentConfig,
        messages: list[ChatMessage],
    ) -> PerformanceEvaluation:
        """Review an agent's replies across a conversation.

        Args:
            agent: The agent under review.
            messages: Conversation to review.

        Returns:
            PerformanceEvaluation; all zeros with an explanatory summary on failure.
        """
        if self._provider is None:
            return PerformanceEvaluation(summary=NOT_CONFIGURED_REASONING)

        prompt = build_performance_prompt(agent.name, agent.system_instruction, messages)
        try:
            scores = await self._provider.generate_structured(
                messages=[Message(role="user", content=prompt)],
                response_schema=PerformanceScores,
            )
        except Exception:
            logger.exception("Performance evaluation failed for agent %s", agent.id)
            return PerformanceEvaluation(summary=FAILURE_REASONING)

        return PerformanceEvaluation(
            overall_score=_clamp(scores.overall_score, 100),
            relevance=_clamp(scores.relevance, 10),
            accuracy=_clamp(scores.accuracy, 10),
            clarity=_clamp(scores.clarity, 10),
            safety=_clamp(scores.safety, 10),
            suggestions=[s for s in scores.suggestions if s.strip()][:3],
            summary=scores.summary,
            graded=True,
        )
