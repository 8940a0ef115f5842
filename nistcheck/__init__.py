"""NIST SP 800-22 style statistical test suite for random bit streams."""

from .analysis import Verdict, assess
from .app import NistCheckApp, RunResult
from .config import EvaluationConfig, ParameterResolver, TestSelection, confidence_interval, resolve_config
from .evaluation import AggregateReport, Evaluator, TestOutcome, evaluate

__all__ = [
    "AggregateReport",
    "EvaluationConfig",
    "Evaluator",
    "NistCheckApp",
    "ParameterResolver",
    "RunResult",
    "TestOutcome",
    "TestSelection",
    "Verdict",
    "assess",
    "confidence_interval",
    "evaluate",
    "resolve_config",
]
