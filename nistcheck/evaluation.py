"""Evaluation orchestration: selection, fixed ordering and early abort.

:class:`Evaluator` resolves the configuration once, runs every selected test
provider in :data:`~nistcheck.tests.factory.TEST_ORDER`, assesses each
returned p-value vector and accumulates the outcomes into an
:class:`AggregateReport`.

Per-test problems never stop the run.  A test whose parameters could not be
resolved, or whose provider rejects the input, is recorded as ``skipped``;
a provider that crashes or returns malformed output is recorded as
``errored``.  Only baseline configuration errors propagate to the caller.

Immediately after the frequency test, streams with a p-value below
:data:`~nistcheck.checkpoint.EARLY_ABORT_THRESHOLD` are counted.  When there
are any, the injected decision function is consulted; a negative answer
returns the partial report with ``aborted`` set.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Dict, List, Literal, Mapping, Sequence, Tuple

import numpy as np

from .analysis import Verdict, assess
from .checkpoint import EARLY_ABORT_THRESHOLD, ContinuationDecision, decline
from .config import (
    EvaluationConfig,
    ParameterResolver,
    Selected,
    confidence_interval,
    plan_tests,
)
from .errors import (
    ConfigurationError,
    InsufficientDataError,
    TestExecutionError,
    TestPreconditionError,
)
from .io import as_bit_matrix
from .tests.base import DEFAULT_DIRECTION, ProviderSpec, TestResult
from .tests.factory import DEFAULT_PROVIDERS, FREQUENCY_TEST

logger = logging.getLogger(__name__)

TestStatus = Literal["completed", "skipped", "errored"]


@dataclass(frozen=True)
class TestOutcome:
    """Result of running and assessing one test."""

    __test__ = False

    name: str
    title: str
    status: TestStatus
    verdicts: Mapping[str, Verdict] = field(default_factory=lambda: MappingProxyType({}))
    p_values: Mapping[str, np.ndarray] = field(default_factory=lambda: MappingProxyType({}))
    reason: str | None = None
    details: str = ""

    @property
    def passed(self) -> bool:
        return self.status == "completed" and all(v.passed for v in self.verdicts.values())

    @property
    def verdict(self) -> Verdict:
        """The verdict of a single-direction test."""

        if len(self.verdicts) != 1:
            raise KeyError(f"Test '{self.name}' has {len(self.verdicts)} verdicts; index by direction.")
        return next(iter(self.verdicts.values()))

    def to_dict(self) -> Dict[str, object]:
        if self.status != "completed":
            return {"status": self.status, "reason": self.reason}
        if tuple(self.verdicts) == (DEFAULT_DIRECTION,):
            return {"status": self.status, **self.verdicts[DEFAULT_DIRECTION].to_dict()}
        payload: Dict[str, object] = {"status": self.status}
        for direction, verdict in self.verdicts.items():
            payload[direction] = verdict.to_dict()
        return payload


@dataclass(frozen=True)
class AggregateReport:
    """Immutable summary of one evaluation."""

    alpha: float
    n_streams: int
    sequence_length: int
    confidence_interval: Tuple[float, float]
    tests: Mapping[str, TestOutcome]
    config: EvaluationConfig
    started_at: datetime
    duration: timedelta
    aborted: bool = False
    frequency_failures: int = 0

    @property
    def completed(self) -> Tuple[TestOutcome, ...]:
        return tuple(o for o in self.tests.values() if o.status == "completed")

    @property
    def passed(self) -> bool:
        """Whether the evaluation ran to the end and every completed test passed."""

        completed = self.completed
        return not self.aborted and bool(completed) and all(o.passed for o in completed)

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "alpha": self.alpha,
            "nStreams": self.n_streams,
            "confidenceInterval": list(self.confidence_interval),
            "aborted": self.aborted,
        }
        for name, outcome in self.tests.items():
            payload[name] = outcome.to_dict()
        return payload


class _ReportAccumulator:
    """Collects outcomes; the evaluator is its only writer."""

    def __init__(
        self,
        config: EvaluationConfig,
        n_streams: int,
        interval: Tuple[float, float],
        started_at: datetime,
    ) -> None:
        self._config = config
        self._n_streams = n_streams
        self._interval = interval
        self._started_at = started_at
        self._clock = time.perf_counter()
        self._outcomes: Dict[str, TestOutcome] = {}

    def record(self, outcome: TestOutcome) -> None:
        self._outcomes[outcome.name] = outcome

    def build(self, *, aborted: bool = False, frequency_failures: int = 0) -> AggregateReport:
        return AggregateReport(
            alpha=self._config.alpha,
            n_streams=self._n_streams,
            sequence_length=self._config.sequence_length,
            confidence_interval=self._interval,
            tests=MappingProxyType(dict(self._outcomes)),
            config=self._config,
            started_at=self._started_at,
            duration=timedelta(seconds=time.perf_counter() - self._clock),
            aborted=aborted,
            frequency_failures=frequency_failures,
        )


class Evaluator:
    """Run a battery of randomness tests over a bit-stream matrix."""

    def __init__(
        self,
        registry: Mapping[str, ProviderSpec] | None = None,
        *,
        resolver: ParameterResolver | None = None,
        decide: ContinuationDecision = decline,
        max_workers: int | None = None,
    ) -> None:
        self._registry = DEFAULT_PROVIDERS if registry is None else registry
        self._resolver = resolver or ParameterResolver()
        self._decide = decide
        self._max_workers = max_workers

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def evaluate(
        self,
        bits,
        config: EvaluationConfig | None = None,
        *,
        decide: ContinuationDecision | None = None,
    ) -> AggregateReport:
        """Evaluate ``bits`` (``n`` rows by ``m`` streams) under ``config``.

        Without a configuration every registered test runs.  ``decide``
        overrides the evaluator's continuation decision for this call only.
        """

        decide = decide if decide is not None else self._decide

        started_at = datetime.now(timezone.utc)
        matrix = as_bit_matrix(bits)
        config = config if config is not None else EvaluationConfig(run_all=True)
        resolved = self._resolver.resolve(matrix.shape, config)
        plan = plan_tests(resolved, self._registry)

        view = matrix[: resolved.sequence_length]
        view.flags.writeable = False
        n_streams = view.shape[1]
        interval = confidence_interval(resolved.alpha, n_streams)
        logger.info(
            "Evaluating %d stream(s) of %d bits; alpha=%s, confidence interval [%.6f, %.6f].",
            n_streams,
            resolved.sequence_length,
            resolved.alpha,
            *interval,
        )

        report = _ReportAccumulator(resolved, n_streams, interval, started_at)
        selected = [entry for entry in plan if isinstance(entry, Selected)]
        if selected and selected[0].name == FREQUENCY_TEST:
            outcome = self._run_test(selected[0], view, resolved.alpha, interval)
            report.record(outcome)
            failures = _count_failures(outcome)
            if failures:
                logger.warning("Frequency test flagged %d stream(s) as non-random.", failures)
                if not decide(failures):
                    logger.info("Evaluation stopped after the frequency test.")
                    return report.build(aborted=True, frequency_failures=failures)
            selected = selected[1:]
        else:
            failures = 0

        for outcome in self._run_tests(selected, view, resolved.alpha, interval):
            report.record(outcome)
        return report.build(frequency_failures=failures)

    # ------------------------------------------------------------------
    # Execution helpers
    # ------------------------------------------------------------------
    def _run_tests(
        self,
        entries: Sequence[Selected],
        bits: np.ndarray,
        alpha: float,
        interval: Tuple[float, float],
    ) -> List[TestOutcome]:
        if not self._max_workers or self._max_workers < 2 or len(entries) < 2:
            return [self._run_test(entry, bits, alpha, interval) for entry in entries]
        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            futures = [
                executor.submit(self._run_test, entry, bits, alpha, interval) for entry in entries
            ]
            # Report order follows the execution plan, not completion order.
            return [future.result() for future in futures]

    def _run_test(
        self,
        entry: Selected,
        bits: np.ndarray,
        alpha: float,
        interval: Tuple[float, float],
    ) -> TestOutcome:
        spec = self._registry[entry.name]
        title = spec.display_name
        if entry.missing:
            error = ConfigurationError(
                f"{title} test requires unresolved parameter(s): {', '.join(entry.missing)}.",
                test=entry.name,
                parameter=entry.missing[0],
            )
            logger.warning("Skipping %s test: %s", title, error)
            return TestOutcome(entry.name, title, "skipped", reason=str(error))

        logger.info("Running %s test.", title)
        try:
            result = spec.run(bits, **entry.parameters)
        except (TestPreconditionError, ConfigurationError) as exc:
            logger.warning("Skipping %s test: %s", title, exc)
            return TestOutcome(entry.name, title, "skipped", reason=str(exc))
        except Exception as exc:
            logger.exception("%s test failed to execute.", title)
            error = TestExecutionError(f"{title} test failed to execute: {exc}")
            return TestOutcome(entry.name, title, "errored", reason=str(error))

        try:
            p_values = _validated_p_values(entry.name, result, bits.shape[1])
            verdicts = {
                direction: assess(values, alpha, interval) for direction, values in p_values.items()
            }
        except (TestExecutionError, InsufficientDataError) as exc:
            logger.error("%s test produced unusable p-values: %s", title, exc)
            details = getattr(result, "details", "")
            return TestOutcome(entry.name, title, "errored", reason=str(exc), details=details)

        return TestOutcome(
            entry.name,
            title,
            "completed",
            verdicts=MappingProxyType(verdicts),
            p_values=p_values,
            details=result.details,
        )


def _validated_p_values(name: str, result: TestResult, n_streams: int) -> Mapping[str, np.ndarray]:
    if not isinstance(result, TestResult):
        raise TestExecutionError(f"Test '{name}' returned {type(result).__name__}, expected TestResult.")
    if not result.p_values:
        raise InsufficientDataError(f"Test '{name}' returned no p-values.")
    for direction, values in result.p_values.items():
        if values.size == 0:
            raise InsufficientDataError(f"Test '{name}' returned an empty '{direction}' p-value vector.")
        if values.size != n_streams:
            raise TestExecutionError(
                f"Test '{name}' returned {values.size} '{direction}' p-values for {n_streams} stream(s)."
            )
        if not np.isfinite(values).all() or (values < 0.0).any() or (values > 1.0).any():
            raise TestExecutionError(f"Test '{name}' returned '{direction}' p-values outside [0, 1].")
    return result.p_values


def _count_failures(outcome: TestOutcome) -> int:
    if outcome.status != "completed":
        return 0
    return int(
        max(np.count_nonzero(values < EARLY_ABORT_THRESHOLD) for values in outcome.p_values.values())
    )


def evaluate(
    bits,
    config: EvaluationConfig | None = None,
    *,
    decide: ContinuationDecision = decline,
    registry: Mapping[str, ProviderSpec] | None = None,
    max_workers: int | None = None,
) -> AggregateReport:
    """Evaluate ``bits`` with a one-off :class:`Evaluator`."""

    evaluator = Evaluator(registry, decide=decide, max_workers=max_workers)
    return evaluator.evaluate(bits, config)


__all__ = [
    "AggregateReport",
    "Evaluator",
    "TestOutcome",
    "TestStatus",
    "evaluate",
]
