"""Output judge module."""

from agentlab.judge.judge import OutputJudge
from agentlab.judge.prompts import (
    build_case_prompt,
    build_performance_prompt,
    format_transcript,
)

__all__ = [
    "OutputJudge",
    "build_case_prompt",
    "build_performance_prompt",
    "format_transcript",
]
