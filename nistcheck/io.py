"""Input helpers for reading bit streams and arranging them into a matrix."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path, PureWindowsPath
from typing import Literal

import numpy as np

from .errors import (
    EmptyInputFileError,
    InputTooLargeError,
    InvalidInputError,
    MissingFileError,
)

InputFormat = Literal["ascii", "binary"]

DEFAULT_MAX_BITS = 1 << 30

_WHITESPACE = re.compile(rb"\s+")


@dataclass(frozen=True)
class BitStreamData:
    """Bit-stream matrix loaded from a file, one stream per column."""

    matrix: np.ndarray
    source: Path
    fmt: InputFormat

    @property
    def sequence_length(self) -> int:
        return int(self.matrix.shape[0])

    @property
    def stream_count(self) -> int:
        return int(self.matrix.shape[1])


def as_bit_matrix(bits) -> np.ndarray:
    """Validate ``bits`` and return it as an ``(n, m)`` ``uint8`` matrix.

    A one-dimensional input is treated as a single stream.
    """

    array = np.asarray(bits)
    if array.ndim == 1:
        array = array.reshape(-1, 1)
    if array.ndim != 2:
        raise InvalidInputError(
            f"Bit streams must be a 1-D or 2-D array, got {array.ndim} dimensions."
        )
    if array.size and not np.isin(array, (0, 1)).all():
        raise InvalidInputError("Bit streams may only contain the values 0 and 1.")
    return array.astype(np.uint8, copy=False)


def split_streams(
    bits: np.ndarray, *, stream_length: int | None = None, streams: int | None = None
) -> np.ndarray:
    """Arrange a flat bit vector into consecutive columns of ``stream_length`` bits."""

    total = bits.size
    if stream_length is None:
        stream_length = total // streams if streams else total
    if stream_length < 1:
        raise InvalidInputError("Not enough bits to build a single stream.")
    if streams is None:
        streams = total // stream_length
    required = stream_length * streams
    if streams < 1 or required > total:
        raise InvalidInputError(
            f"Requested {streams} stream(s) of {stream_length} bits but only {total} bits are available."
        )
    return bits[:required].reshape(streams, stream_length).T


def read_bit_file(
    path: Path | str,
    *,
    fmt: InputFormat = "ascii",
    stream_length: int | None = None,
    streams: int | None = None,
    max_bits: int | None = DEFAULT_MAX_BITS,
) -> BitStreamData:
    """Read ``path`` and split its bits into a stream matrix.

    ``ascii`` files hold ``0``/``1`` characters (whitespace is ignored);
    ``binary`` files are unpacked most significant bit first.
    """

    candidate = _normalise_path(path)
    if not candidate.exists():
        raise MissingFileError(f"Input file not found: {candidate}")
    try:
        raw = candidate.read_bytes()
    except OSError as exc:  # pragma: no cover - filesystem guard
        raise MissingFileError(f"Could not read input file: {candidate}") from exc

    if fmt == "ascii":
        bits = _parse_ascii(raw, candidate)
    elif fmt == "binary":
        bits = np.unpackbits(np.frombuffer(raw, dtype=np.uint8))
    else:
        raise InvalidInputError(f"Unsupported input format: {fmt}")

    if bits.size == 0:
        raise EmptyInputFileError(f"Input file '{candidate}' does not contain any bits.")
    if max_bits is not None and bits.size > max_bits:
        raise InputTooLargeError(
            f"Input file '{candidate}' has {bits.size} bits, exceeding the allowed maximum of {max_bits}."
        )

    matrix = split_streams(bits, stream_length=stream_length, streams=streams)
    return BitStreamData(matrix=matrix, source=candidate, fmt=fmt)


def _parse_ascii(raw: bytes, source: Path) -> np.ndarray:
    compact = _WHITESPACE.sub(b"", raw)
    symbols = np.frombuffer(compact, dtype=np.uint8)
    bits = symbols - ord("0")
    if bits.size and (bits > 1).any():
        offending = chr(symbols[np.argmax(bits > 1)])
        raise InvalidInputError(
            f"Input file '{source}' contains the non-binary character {offending!r}."
        )
    return bits


def _normalise_path(path: Path | str) -> Path:
    if isinstance(path, str) and re.match(r"^[A-Za-z]:\\", path):
        return Path(PureWindowsPath(path))
    return Path(path).expanduser().resolve()


__all__ = [
    "BitStreamData",
    "InputFormat",
    "as_bit_matrix",
    "read_bit_file",
    "split_streams",
]
