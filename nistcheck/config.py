"""Evaluation parameters, their derivation rules and INI configuration parsing.

An :class:`EvaluationConfig` is a partially specified record: every numeric
parameter may be left as ``None`` and is then filled in by the
:class:`ParameterResolver` from the shape of the bit-stream matrix:

``alpha``
    Significance level, defaults to ``0.01``.
``sequence_length``
    Number of bits per stream (``n``), defaults to the matrix row count.
``template_length``
    Template length for template matching tests, ``round(log2(n) / 2)``.
``block_length``
    Block length for block-oriented tests (``M``), ``round(sqrt(n))``.
``template_blocks``
    Number of independent blocks searched for template occurrences
    (``N``), defaults to ``8``.

The derivation table is injectable.  A parameter without a usable rule stays
unresolved, which only blocks the tests that consume it.
"""

from __future__ import annotations

import configparser
import math
import numbers
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Mapping, Optional, Tuple, Union

from .errors import ConfigurationError, MissingFileError
from .io import as_bit_matrix
from .tests.base import ProviderSpec
from .tests.factory import DEFAULT_PROVIDERS, ordered_names

DEFAULT_ALPHA = 0.01
DEFAULT_TEMPLATE_BLOCKS = 8

PARAMETER_FIELDS: Tuple[str, ...] = (
    "alpha",
    "sequence_length",
    "template_length",
    "block_length",
    "template_blocks",
)
_INTEGER_FIELDS = frozenset(PARAMETER_FIELDS) - {"alpha"}

Derivation = Callable[[Mapping[str, object], Tuple[int, int]], object]
"""Callable receiving the values resolved so far and the matrix shape."""


@dataclass(frozen=True)
class TestSelection:
    """Per-test entry of an explicit selection."""

    __test__ = False

    active: bool = True


@dataclass(frozen=True)
class EvaluationConfig:
    """Typed evaluation options; ``None`` means "derive from the input"."""

    alpha: Optional[float] = None
    sequence_length: Optional[int] = None
    template_length: Optional[int] = None
    block_length: Optional[int] = None
    template_blocks: Optional[int] = None
    run_all: bool = False
    tests: Mapping[str, TestSelection] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        for name in _INTEGER_FIELDS:
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, numbers.Integral):
                raise ConfigurationError(
                    f"Parameter '{name}' must be an integer, got {value!r}.", parameter=name
                )
            object.__setattr__(self, name, int(value))
        if self.alpha is not None:
            if isinstance(self.alpha, bool) or not isinstance(self.alpha, numbers.Real):
                raise ConfigurationError(
                    f"Parameter 'alpha' must be numeric, got {self.alpha!r}.", parameter="alpha"
                )
            object.__setattr__(self, "alpha", float(self.alpha))
        selections = {}
        for name, selection in dict(self.tests).items():
            if isinstance(selection, bool):
                selection = TestSelection(active=selection)
            elif not isinstance(selection, TestSelection):
                raise ConfigurationError(
                    f"Selection for test '{name}' must be a TestSelection or a boolean."
                )
            selections[name] = selection
        object.__setattr__(self, "tests", MappingProxyType(selections))

    @classmethod
    def selecting(cls, *names: str, **parameters: object) -> "EvaluationConfig":
        """Build a configuration running only ``names``."""

        return cls(tests={name: TestSelection() for name in names}, **parameters)

    @property
    def is_resolved(self) -> bool:
        return all(getattr(self, name) is not None for name in PARAMETER_FIELDS)

    def parameters(self) -> Mapping[str, object]:
        return {name: getattr(self, name) for name in PARAMETER_FIELDS}


def _round_half_up(value: float) -> int:
    # Python's round() rounds half to even; derivations round half away from zero.
    return int(math.floor(value + 0.5))


def _derive_alpha(values: Mapping[str, object], shape: Tuple[int, int]) -> float:
    return DEFAULT_ALPHA


def _derive_sequence_length(values: Mapping[str, object], shape: Tuple[int, int]) -> int | None:
    rows = shape[0]
    return rows if rows > 0 else None


def _derive_template_length(values: Mapping[str, object], shape: Tuple[int, int]) -> int | None:
    n = values.get("sequence_length")
    if not n or n < 1:
        return None
    derived = _round_half_up(math.log2(n) / 2)
    return derived if derived >= 1 else None


def _derive_block_length(values: Mapping[str, object], shape: Tuple[int, int]) -> int | None:
    n = values.get("sequence_length")
    if not n or n < 1:
        return None
    return _round_half_up(math.sqrt(n))


def _derive_template_blocks(values: Mapping[str, object], shape: Tuple[int, int]) -> int:
    return DEFAULT_TEMPLATE_BLOCKS


DEFAULT_DERIVATIONS: Mapping[str, Derivation] = MappingProxyType(
    {
        "alpha": _derive_alpha,
        "sequence_length": _derive_sequence_length,
        "template_length": _derive_template_length,
        "block_length": _derive_block_length,
        "template_blocks": _derive_template_blocks,
    }
)


class ParameterResolver:
    """Fill unset parameters from the matrix shape and validate the baseline."""

    def __init__(self, derivations: Mapping[str, Derivation] | None = None) -> None:
        self._derivations = dict(DEFAULT_DERIVATIONS if derivations is None else derivations)

    def resolve(self, shape: Tuple[int, int], config: EvaluationConfig) -> EvaluationConfig:
        """Return ``config`` with every derivable parameter populated.

        Resolution is idempotent: an already resolved configuration is
        returned unchanged (the very same object).
        """

        rows, streams = shape
        values = dict(config.parameters())
        # Derivations run in table order so later rules can see earlier results.
        for name in PARAMETER_FIELDS:
            if values[name] is not None:
                continue
            derive = self._derivations.get(name)
            if derive is not None:
                values[name] = derive(values, shape)

        _validate_baseline(values, rows, streams)

        if values == config.parameters():
            return config
        return replace(config, **values)


def resolve_config(
    bits, config: EvaluationConfig, *, resolver: ParameterResolver | None = None
) -> EvaluationConfig:
    """Resolve ``config`` against the shape of the ``bits`` matrix.

    ``bits`` may be any array-like accepted by :func:`~nistcheck.io.as_bit_matrix`.
    """

    shape = as_bit_matrix(bits).shape
    return (resolver or ParameterResolver()).resolve(shape, config)


def _validate_baseline(values: Mapping[str, object], rows: int, streams: int) -> None:
    if streams < 1:
        raise ConfigurationError("The bit-stream matrix does not contain any streams.")
    alpha = values["alpha"]
    if alpha is None:
        raise ConfigurationError("Significance level 'alpha' could not be determined.", parameter="alpha")
    if not 0.0 < alpha < 1.0:
        raise ConfigurationError(
            f"Significance level 'alpha' must lie in (0, 1), got {alpha}.", parameter="alpha"
        )
    n = values["sequence_length"]
    if n is None:
        raise ConfigurationError(
            "Sequence length could not be determined from the input.", parameter="sequence_length"
        )
    if n < 1:
        raise ConfigurationError(
            f"Sequence length must be positive, got {n}.", parameter="sequence_length"
        )
    if n > rows:
        raise ConfigurationError(
            f"Sequence length {n} exceeds the {rows} bits available per stream.",
            parameter="sequence_length",
        )
    for name in ("template_length", "block_length", "template_blocks"):
        value = values[name]
        if value is not None and value < 1:
            raise ConfigurationError(f"Parameter '{name}' must be positive, got {value}.", parameter=name)


def confidence_interval(alpha: float, n_streams: int) -> Tuple[float, float]:
    """Return the acceptable range for the proportion of passing streams.

    Three standard deviations of the normal approximation to the binomial
    proportion ``p_c = 1 - alpha`` over ``n_streams`` streams; the upper bound
    is clamped at one.
    """

    if n_streams < 1:
        raise ConfigurationError("Confidence interval requires at least one stream.")
    p_c = 1.0 - alpha
    spread = 3.0 * math.sqrt(p_c * alpha / n_streams)
    return p_c - spread, min(p_c + spread, 1.0)


# ---------------------------------------------------------------------------
# Test selection plan
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NotSelected:
    """The test is not part of this evaluation."""

    name: str


@dataclass(frozen=True)
class Selected:
    """The test runs with ``parameters``; ``missing`` lists unresolved ones."""

    name: str
    parameters: Mapping[str, object]
    missing: Tuple[str, ...] = ()

    @property
    def runnable(self) -> bool:
        return not self.missing


TestPlan = Union[NotSelected, Selected]


def plan_tests(
    config: EvaluationConfig,
    registry: Mapping[str, ProviderSpec] | None = None,
) -> Tuple[TestPlan, ...]:
    """Map every registered test, in execution order, to its selection state."""

    providers = DEFAULT_PROVIDERS if registry is None else registry
    unknown = sorted(name for name in config.tests if name not in providers)
    if unknown:
        raise ConfigurationError(f"Unknown test(s) in selection: {', '.join(unknown)}.")

    plan: list[TestPlan] = []
    for name in ordered_names(providers):
        selection = config.tests.get(name)
        if not (config.run_all or (selection is not None and selection.active)):
            plan.append(NotSelected(name))
            continue
        spec = providers[name]
        parameters = {param: getattr(config, param) for param in spec.parameters}
        missing = tuple(param for param, value in parameters.items() if value is None)
        plan.append(Selected(name, MappingProxyType(parameters), missing))
    return tuple(plan)


# ---------------------------------------------------------------------------
# INI configuration files
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InputSection:
    """Options describing how the input file is split into streams."""

    format: str = "ascii"
    stream_length: int | None = None
    streams: int | None = None


@dataclass(frozen=True)
class OutputSection:
    """Options controlling report and run-log output."""

    report_path: Path | None = None
    log_results: bool = False
    run_log_path: Path = Path("logs") / "run_log.jsonl"
    run_log_format: str = "jsonl"
    run_log_retention: int | None = 100


@dataclass(frozen=True)
class AppConfig:
    """Aggregate configuration container returned by :func:`load_config`."""

    evaluation: EvaluationConfig
    input: InputSection = field(default_factory=InputSection)
    output: OutputSection = field(default_factory=OutputSection)


def load_config(path: Path) -> AppConfig:
    """Load and validate an INI configuration file."""

    parser = configparser.ConfigParser()
    try:
        with path.open("r", encoding="utf-8") as config_file:
            parser.read_file(config_file)
    except FileNotFoundError as exc:
        raise MissingFileError(f"Configuration file not found: {path}") from exc
    except OSError as exc:  # pragma: no cover - filesystem guard
        raise MissingFileError(f"Could not read configuration file: {path}") from exc
    except configparser.Error as exc:
        raise ConfigurationError(f"Configuration file is malformed: {exc}") from exc

    evaluation = _parse_evaluation(parser)
    return AppConfig(
        evaluation=evaluation,
        input=_parse_input(parser),
        output=_parse_output(parser, path),
    )


def _get_int(section: configparser.SectionProxy, key: str, section_name: str) -> int | None:
    raw = section.get(key, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"Option '{key}' in [{section_name}] must be an integer value.", parameter=key
        ) from exc


def _get_bool(section: configparser.SectionProxy, key: str, section_name: str) -> bool:
    try:
        return section.getboolean(key)
    except ValueError as exc:
        raise ConfigurationError(
            f"Option '{key}' in [{section_name}] must be a boolean value."
        ) from exc


def _parse_evaluation(parser: configparser.ConfigParser) -> EvaluationConfig:
    alpha: float | None = None
    integers: dict[str, int | None] = {}
    if parser.has_section("evaluation"):
        section = parser["evaluation"]
        known = set(PARAMETER_FIELDS)
        for key in section:
            if key not in known:
                raise ConfigurationError(f"Unknown option '{key}' in [evaluation].")
        raw_alpha = section.get("alpha", "").strip()
        if raw_alpha:
            try:
                alpha = float(raw_alpha)
            except ValueError as exc:
                raise ConfigurationError(
                    "Option 'alpha' in [evaluation] must be numeric.", parameter="alpha"
                ) from exc
        for key in _INTEGER_FIELDS:
            integers[key] = _get_int(section, key, "evaluation")

    run_all = True
    selections: dict[str, TestSelection] = {}
    if parser.has_section("tests"):
        section = parser["tests"]
        run_all = False
        for name in section:
            if name == "all":
                run_all = _get_bool(section, name, "tests")
                continue
            if name not in DEFAULT_PROVIDERS:
                raise ConfigurationError(f"Unknown test '{name}' in [tests] section.")
            selections[name] = TestSelection(active=_get_bool(section, name, "tests"))
        if not run_all and not any(selection.active for selection in selections.values()):
            raise ConfigurationError("At least one test must be enabled in [tests] section.")

    return EvaluationConfig(alpha=alpha, run_all=run_all, tests=selections, **integers)


def _parse_input(parser: configparser.ConfigParser) -> InputSection:
    if not parser.has_section("input"):
        return InputSection()
    section = parser["input"]
    fmt = section.get("format", "ascii").strip().lower()
    if fmt not in {"ascii", "binary"}:
        raise ConfigurationError("Option 'format' in [input] must be either 'ascii' or 'binary'.")
    stream_length = _get_int(section, "stream_length", "input")
    streams = _get_int(section, "streams", "input")
    for key, value in (("stream_length", stream_length), ("streams", streams)):
        if value is not None and value < 1:
            raise ConfigurationError(f"Option '{key}' in [input] must be positive.")
    return InputSection(format=fmt, stream_length=stream_length, streams=streams)


def _parse_output(parser: configparser.ConfigParser, config_path: Path) -> OutputSection:
    report_path: Path | None = None
    log_results = False
    base_dir = config_path.resolve().parent
    log_path = (base_dir / "logs" / "run_log.jsonl").resolve()
    log_format = "jsonl"
    log_retention: int | None = 100

    def _apply_logging_overrides(
        section: configparser.SectionProxy, *, section_name: str, allow_enable: bool = False
    ) -> None:
        nonlocal log_results, log_path, log_format, log_retention
        if allow_enable and "enabled" in section:
            log_results = _get_bool(section, "enabled", section_name)
        if "log_results" in section:
            log_results = _get_bool(section, "log_results", section_name)
        for key in ("log_path", "path"):
            if key in section:
                raw_path = section[key].strip()
                if raw_path:
                    candidate = Path(raw_path).expanduser()
                    if not candidate.is_absolute():
                        candidate = base_dir / candidate
                    log_path = candidate.resolve()
                break
        for key in ("log_format", "format"):
            if key in section:
                raw_format = section[key].strip().lower()
                if raw_format not in {"jsonl", "csv"}:
                    raise ConfigurationError(
                        f"Option '{key}' in [{section_name}] must be either 'jsonl' or 'csv'."
                    )
                log_format = raw_format
                break
        for key in ("log_retention", "retention"):
            if key in section:
                parsed = _get_int(section, key, section_name)
                if parsed is not None:
                    log_retention = parsed if parsed > 0 else None
                break

    if parser.has_section("output"):
        section = parser["output"]
        raw_report = section.get("report_path", "").strip()
        if raw_report:
            candidate = Path(raw_report).expanduser()
            if not candidate.is_absolute():
                candidate = (config_path.parent / candidate).resolve()
            report_path = candidate
        _apply_logging_overrides(section, section_name="output")

    if parser.has_section("logging"):
        _apply_logging_overrides(parser["logging"], section_name="logging", allow_enable=True)

    return OutputSection(
        report_path=report_path,
        log_results=log_results,
        run_log_path=log_path,
        run_log_format=log_format,
        run_log_retention=log_retention,
    )


__all__ = [
    "DEFAULT_ALPHA",
    "DEFAULT_DERIVATIONS",
    "AppConfig",
    "EvaluationConfig",
    "InputSection",
    "NotSelected",
    "OutputSection",
    "ParameterResolver",
    "Selected",
    "TestPlan",
    "TestSelection",
    "confidence_interval",
    "load_config",
    "plan_tests",
    "resolve_config",
]
