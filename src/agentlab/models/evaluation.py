"""Evaluation data models.

Suites group reusable cases; runs are immutable records of one suite
execution and carry snapshots of the suite and agent as they were at run
time, so history stays readable after either is edited or deleted.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class TestResult(BaseModel):
    """Judged outcome of one case."""

    __test__ = False  # not a pytest class

    model_config = ConfigDict(populate_by_name=True)

    test_case_id: str | None = None
    actual_output: str
    score: int = Field(ge=0, le=100)
    passed: bool = Field(alias="pass")
    reasoning: str
    timestamp: datetime = Field(default_factory=datetime.now)


class EvaluationCase(BaseModel):
    """Input with an optional expected output."""

    id: str
    input: str
    expected_output: str | None = None


class EvaluationSuite(BaseModel):
    """Named, reusable group of cases."""

    id: str
    name: str
    description: str = ""
    cases: list[EvaluationCase] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class EvaluationRun(BaseModel):
    """One execution of a suite against an agent."""

    model_config = ConfigDict(frozen=True)

    id: str
    suite_id: str
    suite_name_snapshot: str
    agent_id: str
    agent_name_snapshot: str
    agent_version_snapshot: int
    timestamp: datetime
    overall_score: int = Field(ge=0, le=100)
    results: tuple[TestResult, ...] = ()
