"""Agent configuration models.

An agent's live configuration is always its top-level fields. Pending edits
live in ``draft_config`` until they are published.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class DraftConfig(BaseModel):
    """Unpublished overrides for the fields that may be edited through a draft."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    name_zh: str | None = None
    description: str | None = None
    description_zh: str | None = None
    system_instruction: str | None = None

    def merged(self, patch: "DraftConfig") -> "DraftConfig":
        """Return a copy with every field explicitly set on ``patch`` applied."""
        return self.model_copy(update=patch.model_dump(exclude_unset=True))

    def set_fields(self) -> dict[str, str]:
        """Fields holding a pending value."""
        return self.model_dump(exclude_none=True)


class PromptVersion(BaseModel):
    """Immutable snapshot of a published system instruction."""

    model_config = ConfigDict(frozen=True)

    version: int = Field(ge=1)
    timestamp: datetime
    system_instruction: str
    change_log: str
    author: str


class AgentMetrics(BaseModel):
    """Aggregate quality measurements for an agent."""

    quality_score: int = Field(default=80, ge=0, le=100)
    interaction_count: int = Field(default=0, ge=0)
    satisfaction_rate: int = Field(default=0, ge=0, le=100)


class TestCase(BaseModel):
    """Input with an optional golden answer, embedded in an agent's test lab."""

    __test__ = False  # not a pytest class

    id: str
    input: str
    expected_output: str | None = None


class AgentConfig(BaseModel):
    """A system-prompt driven persona executed by the remote backend."""

    id: str = Field(..., min_length=1)
    name: str
    name_zh: str | None = None
    description: str = ""
    description_zh: str | None = None
    system_instruction: str = ""
    # None lets the chat backend use its configured default model
    model: str | None = None
    # Styling hints, opaque to the core
    icon: str | None = None
    color: str | None = None
    current_version: int = Field(default=1, ge=1)
    prompt_versions: list[PromptVersion] = Field(default_factory=list)
    test_cases: list[TestCase] = Field(default_factory=list)
    metrics: AgentMetrics = Field(default_factory=AgentMetrics)
    draft_config: DraftConfig | None = None

    def display_name(self, language: str = "en") -> str:
        """Name in the requested language, falling back to the default name."""
        if language == "zh" and self.name_zh:
            return self.name_zh
        return self.name

    @property
    def has_draft(self) -> bool:
        """Whether unpublished edits are pending."""
        return self.draft_config is not None


DEFAULT_AGENTS: list[AgentConfig] = [
    AgentConfig(
        id="general-assistant",
        name="General Assistant",
        name_zh="通用助手",
        description="A helpful assistant for everyday questions.",
        description_zh="回答日常问题的助手。",
        system_instruction=(
            "You are a helpful, concise assistant. Answer accurately and say "
            "when you are unsure."
        ),
        icon="Bot",
    ),
    AgentConfig(
        id="code-reviewer",
        name="Code Reviewer",
        name_zh="代码审查员",
        description="Reviews code for bugs, style and maintainability.",
        description_zh="审查代码中的缺陷、风格和可维护性问题。",
        system_instruction=(
            "You are a senior engineer reviewing code. Point out bugs first, then "
            "readability issues. Suggest concrete fixes."
        ),
        icon="Code",
    ),
]
