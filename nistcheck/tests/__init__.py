"""Statistical randomness test providers."""

from .base import DEFAULT_DIRECTION, ProviderSpec, TestProvider, TestResult
from .factory import DEFAULT_PROVIDERS, FREQUENCY_TEST, TEST_ORDER, build_registry, ordered_names
from .statistical import (
    block_frequency,
    cumulative_sums,
    dft,
    frequency,
    longest_run,
    non_overlapping_template,
    rank,
    runs,
)

__all__ = [
    "DEFAULT_DIRECTION",
    "DEFAULT_PROVIDERS",
    "FREQUENCY_TEST",
    "ProviderSpec",
    "TEST_ORDER",
    "TestProvider",
    "TestResult",
    "block_frequency",
    "build_registry",
    "cumulative_sums",
    "dft",
    "frequency",
    "longest_run",
    "non_overlapping_template",
    "ordered_names",
    "rank",
    "runs",
]
