"""agentlab - agent administration console core.

Draft/publish agent versioning, multi-session streaming chat and
LLM-judged evaluation suites.
"""

__version__ = "0.1.0"
