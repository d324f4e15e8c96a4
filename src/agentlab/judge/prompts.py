"""Prompt templates for the output judge.

These templates define how the judge grades an agent's answer, with or
without a golden reference, and how it reviews a whole conversation.
"""

from agentlab.models.chat import Message as ChatMessage
from agentlab.models.chat import Role

REFERENCE_JUDGE_PROMPT = """\
You are an expert AI evaluator.

## System Instruction Context
{system_instruction}

## User Input
{input}

## Actual Output
{actual_output}

## Expected Output (Golden)
{expected_output}

## Your Task
Compare the Actual Output with the Expected Output.
Determine if the Actual Output accurately answers the User Input and matches
the intent and facts of the Expected Output. Exact wording does not matter.

Respond with a pure JSON object (no markdown):
{{
    "score": <number from 0 to 100>,
    "reasoning": "Explanation of the score"
}}
"""

REFERENCE_FREE_JUDGE_PROMPT = """\
You are an expert AI evaluator.

## System Instruction Context
{system_instruction}

## User Input
{input}

## Actual Output
{actual_output}

## Your Task
No reference answer is available. Grade the Actual Output on its own merits:
accuracy, relevance to the User Input, and a tone consistent with the
System Instruction.

Respond with a pure JSON object (no markdown):
{{
    "score": <number from 0 to 100>,
    "reasoning": "Explanation of the score"
}}
"""

PERFORMANCE_PROMPT = """\
You are reviewing the performance of an AI agent in a conversation.

## Agent
{agent_name}

## System Instruction
{system_instruction}

## Conversation Transcript
{conversation_transcript}

## Your Task
Rate the agent's replies.
- overall_score: 0-100
- relevance, accuracy, clarity, safety: 0-10 each
- suggestions: 2-3 concrete improvements to the system instruction
- summary: one or two sentences

Respond with a pure JSON object (no markdown):
{{
    "overall_score": <0-100>,
    "relevance": <0-10>,
    "accuracy": <0-10>,
    "clarity": <0-10>,
    "safety": <0-10>,
    "suggestions": ["...", "..."],
    "summary": "..."
}}
"""


def build_case_prompt(
    input_text: str,
    actual_output: str,
    expected_output: str,
    system_instruction: str | None,
) -> str:
    """Build the judging prompt, reference-based when an expected output is given."""
    context = system_instruction or "None"
    if expected_output.strip():
        return REFERENCE_JUDGE_PROMPT.format(
            system_instruction=context,
            input=input_text,
            actual_output=actual_output,
            expected_output=expected_output,
        )
    return REFERENCE_FREE_JUDGE_PROMPT.format(
        system_instruction=context,
        input=input_text,
        actual_output=actual_output,
    )


def format_transcript(messages: list[ChatMessage]) -> str:
    """Format chat messages as a readable transcript."""
    if not messages:
        return "(No messages)"

    lines = []
    for message in messages:
        label = "USER" if message.role == Role.USER else "AGENT"
        if message.role == Role.SYSTEM:
            label = "SYSTEM"
        lines.append(f"{label}: {message.text}")
    return "\n\n".join(lines)


def build_performance_prompt(
    agent_name: str,
    system_instruction: str,
    messages: list[ChatMessage],
) -> str:
    """Build the agent-performance review prompt."""
    return PERFORMANCE_PROMPT.format(
        agent_name=agent_name,
        system_instruction=system_instruction or "None",
        conversation_transcript=format_transcript(messages),
    )
