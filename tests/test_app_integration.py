from __future__ import annotations

import io
import json
from pathlib import Path

import numpy as np

from nistcheck.app import NistCheckApp
from nistcheck.checkpoint import always_continue, decline
from nistcheck.evaluation import Evaluator

CONFIG_TEMPLATE = """
[evaluation]
alpha = 0.01

[tests]
frequency = true
block_frequency = true
runs = true

[input]
stream_length = 1000

[output]
log_results = true
log_path = logs/history.jsonl
report_path = reports/summary.md
""".strip()


def _write_files(tmp_path: Path, data: str) -> tuple[Path, Path]:
    config_path = tmp_path / "config.ini"
    config_path.write_text(CONFIG_TEMPLATE, encoding="utf-8")
    data_path = tmp_path / "data.txt"
    data_path.write_text(data, encoding="utf-8")
    return data_path, config_path


def _random_bits(count: int) -> str:
    bits = np.random.default_rng(42).integers(0, 2, size=count)
    return "".join(str(bit) for bit in bits)


def test_app_run_produces_report_and_log(tmp_path: Path) -> None:
    input_path, config_path = _write_files(tmp_path, _random_bits(4000))
    output = io.StringIO()

    result = NistCheckApp().run(
        input_path=input_path, config_path=config_path, decide=always_continue, output=output
    )

    report = result.report
    assert report.n_streams == 4
    assert report.sequence_length == 1000
    assert list(report.tests) == ["frequency", "block_frequency", "runs"]
    assert all(outcome.status == "completed" for outcome in report.tests.values())
    assert result.verdict in {"RANDOM", "NON-RANDOM"}
    assert result.report_path == (tmp_path / "reports" / "summary.md").resolve()
    assert result.report_path.exists()
    assert "nStreams: 4" in output.getvalue()

    lines = (tmp_path / "logs" / "history.jsonl").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    entry = json.loads(lines[0])
    assert entry["result"] == result.verdict
    assert entry["tests_run"] == 3
    assert entry["report_path"] == str(result.report_path)


def test_app_run_stops_when_frequency_flags_streams(tmp_path: Path) -> None:
    input_path, config_path = _write_files(tmp_path, "0" * 1000 + "01" * 500)

    result = NistCheckApp().run(input_path=input_path, config_path=config_path, output=io.StringIO())

    assert result.aborted
    assert result.verdict == "ABORTED"
    assert result.report.frequency_failures == 1
    assert list(result.report.tests) == ["frequency"]
    entry = json.loads((tmp_path / "logs" / "history.jsonl").read_text(encoding="utf-8"))
    assert entry["result"] == "ABORTED"


def test_app_run_without_config_runs_every_test(tmp_path: Path) -> None:
    data_path = tmp_path / "data.txt"
    data_path.write_text(_random_bits(2000), encoding="utf-8")

    result = NistCheckApp().run(
        input_path=data_path, stream_length=1000, decide=always_continue, output=io.StringIO()
    )

    assert result.config_path is None
    assert result.report_path is None
    assert len(result.report.tests) == 8
    assert result.report.tests["rank"].status == "skipped"


def test_app_run_decision_reaches_injected_evaluator(tmp_path: Path) -> None:
    input_path, config_path = _write_files(tmp_path, "0" * 1000 + "01" * 500)
    app = NistCheckApp(Evaluator(decide=decline))

    result = app.run(
        input_path=input_path, config_path=config_path, decide=always_continue, output=io.StringIO()
    )

    assert not result.aborted
    assert list(result.report.tests) == ["frequency", "block_frequency", "runs"]


def test_app_run_keeps_injected_evaluator_decision_by_default(tmp_path: Path) -> None:
    input_path, config_path = _write_files(tmp_path, "0" * 1000 + "01" * 500)
    app = NistCheckApp(Evaluator(decide=always_continue))

    result = app.run(input_path=input_path, config_path=config_path, output=io.StringIO())

    assert not result.aborted
    assert result.report.frequency_failures == 1
