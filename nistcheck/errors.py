"""Custom exceptions for the NIST statistical test suite."""

from __future__ import annotations


class NistCheckError(Exception):
    """Base error type for application specific failures."""


class MissingFileError(NistCheckError):
    """Raised when a required input or configuration file could not be located."""


class ConfigurationError(NistCheckError):
    """Raised when a parameter is missing, underivable or invalid.

    ``test`` is set when the problem only affects a single randomness test;
    such errors are recorded against that test and the evaluation continues.
    Errors without a ``test`` concern the baseline configuration and are
    fatal for the whole evaluation.
    """

    def __init__(
        self,
        message: str,
        *,
        test: str | None = None,
        parameter: str | None = None,
    ) -> None:
        super().__init__(message)
        self.test = test
        self.parameter = parameter


class TestPreconditionError(NistCheckError):
    """Raised by a test provider when its statistic is not meaningful for the input."""

    __test__ = False


class InsufficientDataError(NistCheckError):
    """Raised when a verdict is requested for an empty p-value vector."""


class TestExecutionError(NistCheckError):
    """Raised when a test provider crashes or returns malformed output."""

    __test__ = False


class InvalidInputError(NistCheckError):
    """Raised when the provided input data does not meet application constraints."""


class EmptyInputFileError(InvalidInputError):
    """Raised when the input file does not contain any usable bits."""


class InputTooLargeError(InvalidInputError):
    """Raised when the input file exceeds the supported number of bits."""
