"""Evaluation suites, runs and the case runner."""

from agentlab.evaluation.engine import EvaluationEngine, overall_score

__all__ = [
    "EvaluationEngine",
    "overall_score",
]
