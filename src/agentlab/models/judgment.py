"""Judgment data models.

Defines the structured output requested from the judge LLM and the
agent-performance evaluation result.
"""

from pydantic import BaseModel, ConfigDict, Field

PASS_THRESHOLD = 70


class JudgeVerdict(BaseModel):
    """Structured output from the judge LLM for a single case."""

    model_config = ConfigDict(extra="forbid")

    score: float
    reasoning: str


class PerformanceScores(BaseModel):
    """Structured output from the judge LLM for an agent-performance review."""

    model_config = ConfigDict(extra="forbid")

    overall_score: float
    relevance: float
    accuracy: float
    clarity: float
    safety: float
    suggestions: list[str]
    summary: str


class PerformanceEvaluation(BaseModel):
    """Agent-performance evaluation with bounded sub-scores."""

    overall_score: int = Field(default=0, ge=0, le=100)
    relevance: int = Field(default=0, ge=0, le=10)
    accuracy: int = Field(default=0, ge=0, le=10)
    clarity: int = Field(default=0, ge=0, le=10)
    safety: int = Field(default=0, ge=0, le=10)
    suggestions: list[str] = Field(default_factory=list)
    summary: str = ""
    # False for fallback results produced without a backend verdict
    graded: bool = False
