"""Second-level assessment of the p-values produced by a single test.

A randomness test yields one p-value per stream.  Across many streams two
properties are expected under the null hypothesis, and :func:`assess` checks
both of them:

Proportion of passing streams
    The fraction of streams with ``p_value >= alpha`` must fall inside the
    confidence interval returned by
    :func:`nistcheck.config.confidence_interval`.

Uniformity of p-values
    The p-values are binned into ten equal-width bins and compared against a
    uniform distribution with a chi-squared statistic (nine degrees of
    freedom).  The upper-tail probability of that statistic, ``p_value_T``,
    must be at least :data:`UNIFORMITY_THRESHOLD`.

Bins are half-open, ``[k/10, (k+1)/10)``, except the last one which also
contains ``1.0``.  A boundary value such as ``0.3`` therefore always lands in
the bin it opens.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence, Tuple

import numpy as np
from scipy.special import gammaincc

from .errors import InsufficientDataError

HISTOGRAM_BINS = 10
"""Number of equal-width bins used for the uniformity check."""

UNIFORMITY_THRESHOLD = 0.0001
"""Minimum ``p_value_T`` for the p-values to be considered uniform."""


@dataclass(frozen=True)
class Verdict:
    """Outcome of both second-level checks for one p-value vector."""

    pass_ratio: float
    proportion_pass: bool
    histogram: Tuple[int, ...]
    chi_squared: float
    p_value_t: float
    fitting_pass: bool
    sample_size: int

    @property
    def passed(self) -> bool:
        return self.proportion_pass and self.fitting_pass

    def to_dict(self) -> Mapping[str, object]:
        return {
            "pass_ratio": self.pass_ratio,
            "proportion_pass": self.proportion_pass,
            "F": list(self.histogram),
            "chi_squared": self.chi_squared,
            "p_value_T": self.p_value_t,
            "fitting_pass": self.fitting_pass,
        }


def p_value_histogram(p_values: np.ndarray) -> np.ndarray:
    """Count ``p_values`` into :data:`HISTOGRAM_BINS` half-open bins."""

    indices = np.minimum(np.floor(p_values * HISTOGRAM_BINS), HISTOGRAM_BINS - 1).astype(np.int64)
    return np.bincount(indices, minlength=HISTOGRAM_BINS)


def uniformity_p_value(chi_squared: float) -> float:
    """Upper-tail probability of ``chi_squared`` with ``HISTOGRAM_BINS - 1`` degrees of freedom."""

    return float(gammaincc((HISTOGRAM_BINS - 1) / 2.0, chi_squared / 2.0))


def assess(
    p_values: Sequence[float] | np.ndarray,
    alpha: float,
    confidence_interval: Tuple[float, float],
) -> Verdict:
    """Build a :class:`Verdict` for ``p_values``.

    Parameters
    ----------
    p_values:
        One p-value per stream, each in ``[0, 1]``.
    alpha:
        Significance level; a stream passes when ``p_value >= alpha``.
    confidence_interval:
        ``(lower, upper)`` bounds for the proportion of passing streams.

    Raises
    ------
    InsufficientDataError
        If ``p_values`` is empty.
    ValueError
        If any value is NaN or falls outside ``[0, 1]``.
    """

    values = np.asarray(p_values, dtype=float).reshape(-1)
    sample_size = values.size
    if sample_size == 0:
        raise InsufficientDataError("Cannot assess an empty p-value vector.")
    if np.isnan(values).any() or (values < 0.0).any() or (values > 1.0).any():
        raise ValueError("P-values must be finite numbers in the [0, 1] range.")

    lower, upper = confidence_interval
    pass_ratio = float(np.count_nonzero(values >= alpha)) / sample_size
    proportion_pass = lower <= pass_ratio <= upper

    histogram = p_value_histogram(values)
    expected = sample_size / HISTOGRAM_BINS
    chi_squared = float(((histogram - expected) ** 2 / expected).sum())
    p_value_t = uniformity_p_value(chi_squared)

    return Verdict(
        pass_ratio=pass_ratio,
        proportion_pass=bool(proportion_pass),
        histogram=tuple(int(count) for count in histogram),
        chi_squared=chi_squared,
        p_value_t=p_value_t,
        fitting_pass=p_value_t >= UNIFORMITY_THRESHOLD,
        sample_size=sample_size,
    )


__all__ = [
    "HISTOGRAM_BINS",
    "UNIFORMITY_THRESHOLD",
    "Verdict",
    "assess",
    "p_value_histogram",
    "uniformity_p_value",
]
