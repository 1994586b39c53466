"""
Core services for the indicator engine.

This package contains cohort evaluation, indicator evaluation with
per-session caching, and the indicator registry.
"""

from .cohort_evaluator import CohortEvaluator, OperandOrder, QueryProvider
from .indicator_evaluator import EvaluationSession, IndicatorEvaluator, SessionStats
from .indicator_library import IndicatorFactory, IndicatorLibrary
from .outcome import IndicatorOutcome

__all__ = [
    "CohortEvaluator",
    "EvaluationSession",
    "IndicatorEvaluator",
    "IndicatorFactory",
    "IndicatorLibrary",
    "IndicatorOutcome",
    "OperandOrder",
    "QueryProvider",
    "SessionStats",
]
