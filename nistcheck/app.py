"""Application orchestration for the nistcheck CLI."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TextIO

from .checkpoint import ContinuationDecision, decline
from .config import AppConfig, EvaluationConfig, load_config
from .evaluation import AggregateReport, Evaluator
from .io import read_bit_file
from .reporting import print_console_summary, write_markdown_report
from .runlog import log_run_result

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunResult:
    """Summary of a full application run."""

    input_path: Path
    config_path: Path | None
    report: AggregateReport
    started_at: datetime
    duration: timedelta
    report_path: Path | None = None

    @property
    def is_random(self) -> bool:
        return self.report.passed

    @property
    def aborted(self) -> bool:
        return self.report.aborted

    @property
    def errored(self) -> bool:
        """Whether any selected test crashed or returned unusable p-values."""

        return any(outcome.status == "errored" for outcome in self.report.tests.values())

    @property
    def verdict(self) -> str:
        if self.report.aborted:
            return "ABORTED"
        return "RANDOM" if self.report.passed else "NON-RANDOM"


class NistCheckApp:
    """High level service wiring configuration, input, evaluation and rendering."""

    def __init__(self, evaluator: Evaluator | None = None, *, max_workers: int | None = None) -> None:
        self._evaluator = evaluator
        self._max_workers = max_workers

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def run(
        self,
        input_path: Path,
        config_path: Path | None = None,
        report_path: Path | None = None,
        verbose: bool = False,
        *,
        decide: ContinuationDecision | None = None,
        stream_length: int | None = None,
        streams: int | None = None,
        fmt: str | None = None,
        output: TextIO | None = None,
    ) -> RunResult:
        """Execute the evaluation workflow for ``input_path``.

        Command line overrides (``stream_length``, ``streams``, ``fmt``) take
        precedence over the ``[input]`` section of the configuration file.
        ``decide`` is consulted when the frequency test flags streams; when it
        is omitted an injected evaluator keeps its own decision and a default
        one declines.
        """

        started_at = datetime.now(timezone.utc)
        config = self._load_config(config_path)
        data = read_bit_file(
            input_path,
            fmt=fmt or config.input.format,
            stream_length=stream_length or config.input.stream_length,
            streams=streams or config.input.streams,
        )
        logger.info(
            "Loaded %d stream(s) of %d bits from %s.",
            data.stream_count,
            data.sequence_length,
            data.source,
        )

        evaluator = self._evaluator or Evaluator(decide=decline, max_workers=self._max_workers)
        report = evaluator.evaluate(data.matrix, config.evaluation, decide=decide)
        result = RunResult(
            input_path=Path(input_path),
            config_path=config_path,
            report=report,
            started_at=started_at,
            duration=datetime.now(timezone.utc) - started_at,
        )

        print_console_summary(result, verbose=verbose, stream=output)
        target = report_path or config.output.report_path
        if target is not None:
            written = write_markdown_report(result, target)
            result = RunResult(
                input_path=result.input_path,
                config_path=result.config_path,
                report=result.report,
                started_at=result.started_at,
                duration=result.duration,
                report_path=written,
            )
        if config.output.log_results:
            log_run_result(
                result,
                result.report_path,
                log_path=config.output.run_log_path,
                fmt=config.output.run_log_format,
                retention=config.output.run_log_retention,
            )
        return result

    def _load_config(self, path: Path | None) -> AppConfig:
        if path is None:
            return AppConfig(evaluation=EvaluationConfig(run_all=True))
        return load_config(Path(path))


__all__ = ["NistCheckApp", "RunResult"]
