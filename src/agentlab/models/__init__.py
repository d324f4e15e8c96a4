"""Data models for agentlab."""

from agentlab.models.agent import (
    DEFAULT_AGENTS,
    AgentConfig,
    AgentMetrics,
    DraftConfig,
    PromptVersion,
    TestCase,
)
from agentlab.models.chat import Attachment, Message, Role, Session, derive_title
from agentlab.models.config import (
    ChatSettings,
    ConnectionSettings,
    EvaluationSettings,
    LLMConfig,
    StateSettings,
)
from agentlab.models.evaluation import (
    EvaluationCase,
    EvaluationRun,
    EvaluationSuite,
    TestResult,
)
from agentlab.models.judgment import (
    PASS_THRESHOLD,
    JudgeVerdict,
    PerformanceEvaluation,
    PerformanceScores,
)

__all__ = [
    "DEFAULT_AGENTS",
    "PASS_THRESHOLD",
    "AgentConfig",
    "AgentMetrics",
    "Attachment",
    "ChatSettings",
    "ConnectionSettings",
    "DraftConfig",
    "EvaluationCase",
    "EvaluationRun",
    "EvaluationSettings",
    "EvaluationSuite",
    "JudgeVerdict",
    "LLMConfig",
    "Message",
    "PerformanceEvaluation",
    "PerformanceScores",
    "PromptVersion",
    "Role",
    "Session",
    "StateSettings",
    "TestCase",
    "TestResult",
    "derive_title",
]
