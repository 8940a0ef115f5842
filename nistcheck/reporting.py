"""Reporting utilities for console and markdown output."""

from __future__ import annotations

import re
import sys
import textwrap
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from string import Template
from typing import List, Sequence, TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from datetime import timedelta
    from .analysis import Verdict
    from .app import RunResult
    from .evaluation import AggregateReport, TestOutcome


@dataclass(frozen=True)
class ReportTemplate:
    """Container for the markdown report template."""

    template: Template = Template(
        textwrap.dedent(
            """
            # NIST Statistical Test Suite Report

            ## Summary
            ${summary}

            ## Input
            ${file_metadata}

            ## Parameters
            ${parameters}

            ## Test Results
            ${test_table}${test_notes}
            _Generated on ${timestamp} (duration: ${duration})._
            """
        ).strip()
    )


DEFAULT_TEMPLATE = ReportTemplate()


def _status_label(passed: bool) -> str:
    return "PASSED" if passed else "NOT PASSED"


def print_console_summary(result: "RunResult", *, verbose: bool = False, stream: TextIO | None = None) -> None:
    """Print a summary of the evaluation to ``stream``."""

    output = stream if stream is not None else sys.stdout
    report = result.report
    lower, upper = report.confidence_interval
    print(f"alpha: {report.alpha}", file=output)
    print(f"nStreams: {report.n_streams}", file=output)
    print(f"confidence interval: [{lower:.6f}, {upper:.6f}]", file=output)

    for outcome in report.tests.values():
        print(f"\n{outcome.title} test", file=output)
        if outcome.status != "completed":
            print(f"  {outcome.status.upper()}: {outcome.reason}", file=output)
            continue
        for direction, verdict in outcome.verdicts.items():
            prefix = "" if len(outcome.verdicts) == 1 else f"{direction.capitalize()}: "
            for line in _verdict_lines(verdict):
                print(f"  {prefix}{line}", file=output)
        if verbose and outcome.details:
            print(f"  {outcome.details}", file=output)

    if report.aborted:
        print(
            f"\nEvaluation stopped after the frequency test "
            f"({report.frequency_failures} failing sequence(s)).",
            file=output,
        )
    print(f"\nResult: {result.verdict}", file=output)


def build_markdown_report(result: "RunResult", *, template: Template | None = None) -> str:
    """Generate a markdown report for ``result`` using ``template``."""

    template = template or DEFAULT_TEMPLATE.template
    report = result.report
    timestamp = result.started_at.astimezone(timezone.utc).isoformat()
    return template.substitute(
        summary=_format_summary_section(result),
        file_metadata=_format_file_metadata(result),
        parameters=_format_parameters(report),
        test_table=_format_test_table(report.tests.values()),
        test_notes=_format_test_notes(report.tests.values()),
        timestamp=timestamp,
        duration=_format_duration(result.duration),
    )


def write_markdown_report(
    result: "RunResult",
    path: Path | None = None,
    *,
    template: Template | None = None,
) -> Path:
    """Render and persist a markdown report for ``result``."""

    target = _resolve_report_path(result, path)
    target.parent.mkdir(parents=True, exist_ok=True)
    content = build_markdown_report(result, template=template)
    target.write_text(content, encoding="utf-8")
    return target


# ---------------------------------------------------------------------------
# Helper formatting utilities
# ---------------------------------------------------------------------------

def _verdict_lines(verdict: "Verdict") -> List[str]:
    return [
        f"Proportion of passed sequences: {_status_label(verdict.proportion_pass)}",
        f"pass_ratio: {verdict.pass_ratio:.6f}",
        f"Uniform distribution of P-values: {_status_label(verdict.fitting_pass)}",
        f"p_value_T: {verdict.p_value_t:.6f}",
    ]


def _format_summary_section(result: "RunResult") -> str:
    report = result.report
    completed = report.completed
    passed = sum(1 for outcome in completed if outcome.passed)
    lines = [
        f"- **Result:** {result.verdict}",
        f"- **Tests passed:** {passed} of {len(completed)} completed",
    ]
    if report.aborted:
        lines.append(
            f"- **Stopped early:** frequency test flagged {report.frequency_failures} sequence(s)"
        )
    return "\n".join(lines)


def _format_file_metadata(result: "RunResult") -> str:
    lines = [_metadata_line("Input", result.input_path)]
    if result.config_path is not None:
        lines.append(_metadata_line("Configuration", result.config_path))
    lines.append(f"- **Streams:** {result.report.n_streams}")
    lines.append(f"- **Bits per stream:** {result.report.sequence_length}")
    return "\n".join(lines)


def _metadata_line(label: str, path: Path) -> str:
    try:
        stat = path.stat()
        modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        details = f"size: {stat.st_size} bytes, modified: {modified.isoformat()}"
    except OSError:
        details = "metadata unavailable"
    return f"- **{label} file:** {path} ({details})"


def _format_parameters(report: "AggregateReport") -> str:
    config = report.config
    lower, upper = report.confidence_interval
    lines = [
        f"- **alpha:** {report.alpha}",
        f"- **Confidence interval:** [{lower:.6f}, {upper:.6f}]",
        f"- **Block length (M):** {config.block_length}",
        f"- **Template length:** {config.template_length}",
        f"- **Template blocks (N):** {config.template_blocks}",
    ]
    return "\n".join(lines)


def _format_test_table(outcomes: Sequence["TestOutcome"]) -> str:
    header = "| Test | Status | Pass ratio | Proportion | P-value T | Uniformity |"
    separator = "| --- | --- | --- | --- | --- | --- |"
    rows = []
    for outcome in outcomes:
        if outcome.status != "completed":
            rows.append(f"| {outcome.title} | {outcome.status.upper()} | - | - | - | - |")
            continue
        for direction, verdict in outcome.verdicts.items():
            label = outcome.title if len(outcome.verdicts) == 1 else f"{outcome.title} ({direction})"
            rows.append(
                "| {} | {} | {:.4f} | {} | {:.6f} | {} |".format(
                    label,
                    "PASS" if verdict.passed else "FAIL",
                    verdict.pass_ratio,
                    _status_label(verdict.proportion_pass),
                    verdict.p_value_t,
                    _status_label(verdict.fitting_pass),
                )
            )
    if not rows:
        rows.append("| _(no tests executed)_ | - | - | - | - | - |")
    return "\n".join([header, separator, *rows])


def _format_test_notes(outcomes: Sequence["TestOutcome"]) -> str:
    sections: list[str] = []
    for outcome in outcomes:
        lines = []
        if outcome.reason:
            lines.append(f"> {outcome.reason}")
        for direction, verdict in outcome.verdicts.items():
            histogram = ", ".join(str(count) for count in verdict.histogram)
            suffix = "" if len(outcome.verdicts) == 1 else f" ({direction})"
            lines.append(f"- P-value histogram{suffix}: [{histogram}], chi-squared {verdict.chi_squared:.4f}")
        if outcome.details:
            lines.append(f"- {outcome.details}")
        if lines:
            sections.append("\n".join([f"### {outcome.title}", *lines]))
    if not sections:
        return "\n"
    return "\n\n" + "\n\n".join(sections) + "\n"


def _format_duration(duration: "timedelta") -> str:
    total_seconds = duration.total_seconds()
    if total_seconds < 1:
        return f"{total_seconds * 1000:.0f} ms"
    return f"{total_seconds:.2f} s"


def _resolve_report_path(result: "RunResult", path: Path | None) -> Path:
    if path is not None:
        return Path(path).expanduser().resolve()
    base_dir = Path("reports")
    stem = result.input_path.stem or result.input_path.name or "evaluation"
    safe_stem = re.sub(r"[^A-Za-z0-9_.-]+", "-", stem).strip("-") or "evaluation"
    timestamp = result.started_at.astimezone(timezone.utc).strftime("%Y%m%d-%H%M%S")
    filename = f"{safe_stem}-{timestamp}.md"
    return (base_dir / filename).resolve()


__all__ = [
    "print_console_summary",
    "build_markdown_report",
    "write_markdown_report",
    "ReportTemplate",
]
