"""Utility helpers shared by the statistical test providers."""

from __future__ import annotations

from typing import Iterable

import numpy as np

from ..errors import TestPreconditionError


def require_length(test: str, n: int, minimum: int) -> None:
    """Raise :class:`TestPreconditionError` when ``n`` is below ``minimum``."""

    if n < minimum:
        raise TestPreconditionError(
            f"{test} requires at least {minimum} bits per stream, got {n}."
        )


def as_signed(bits: np.ndarray) -> np.ndarray:
    """Map ``{0, 1}`` bits onto ``{-1, +1}`` steps."""

    return 2 * bits.astype(np.int64) - 1


def split_blocks(bits: np.ndarray, block_length: int) -> np.ndarray:
    """Return the ``(blocks, block_length, streams)`` view of complete blocks.

    Trailing bits that do not fill a block are discarded.
    """

    n, streams = bits.shape
    count = n // block_length
    return bits[: count * block_length].reshape(count, block_length, streams)


def longest_runs_of_ones(blocks: np.ndarray) -> np.ndarray:
    """Longest run of ones along axis 1 of a ``(blocks, M, streams)`` array."""

    current = np.zeros((blocks.shape[0], blocks.shape[2]), dtype=np.int64)
    longest = np.zeros_like(current)
    for position in range(blocks.shape[1]):
        current = (current + 1) * blocks[:, position, :]
        np.maximum(longest, current, out=longest)
    return longest


def gf2_rank(rows: Iterable[int]) -> int:
    """Rank over GF(2) of a matrix whose rows are packed into integers."""

    pivots: dict[int, int] = {}
    for row in rows:
        while row:
            lead = row.bit_length() - 1
            if lead not in pivots:
                pivots[lead] = row
                break
            row ^= pivots[lead]
    return len(pivots)


def pack_rows(matrix: np.ndarray) -> list[int]:
    """Pack each row of a 0/1 matrix into an integer, most significant bit first."""

    weights = 1 << np.arange(matrix.shape[1] - 1, -1, -1, dtype=np.uint64)
    return [int(value) for value in matrix.astype(np.uint64) @ weights]


def count_non_overlapping(haystack: bytes, template: bytes) -> int:
    """Count non-overlapping occurrences of ``template`` scanning left to right.

    After a hit the window jumps past the template; otherwise it slides by
    one bit.
    """

    count = 0
    position = haystack.find(template)
    while position != -1:
        count += 1
        position = haystack.find(template, position + len(template))
    return count


def clip_unit(values: np.ndarray) -> np.ndarray:
    """Clamp rounding noise so p-values stay inside ``[0, 1]``."""

    return np.clip(np.asarray(values, dtype=float), 0.0, 1.0)
