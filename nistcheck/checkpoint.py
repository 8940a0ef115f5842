"""Decision functions consulted when the frequency test flags failing streams.

The evaluator calls the decision function with the number of streams whose
frequency p-value fell below :data:`EARLY_ABORT_THRESHOLD`.  Returning
``False`` ends the evaluation early with the results gathered so far.
"""

from __future__ import annotations

import sys
from typing import Callable, TextIO

ContinuationDecision = Callable[[int], bool]

EARLY_ABORT_THRESHOLD = 0.01
"""Frequency p-value below which a stream counts as failing the checkpoint."""

PROMPT_TEMPLATE = (
    "Frequency test resulted in non-randomness of {count} sequence(s). Continue? (y/N) "
)


def decline(failed_streams: int) -> bool:
    """Never continue.  Library default for non-interactive use."""

    return False


def always_continue(failed_streams: int) -> bool:
    """Always continue with the remaining tests."""

    return True


def console_prompt(
    stdin: TextIO | None = None, stdout: TextIO | None = None
) -> ContinuationDecision:
    """Return a decision function asking on the console.

    Only an explicit ``y`` (case-insensitive) continues; an empty answer or
    end of input declines.
    """

    def ask(failed_streams: int) -> bool:
        source = stdin if stdin is not None else sys.stdin
        target = stdout if stdout is not None else sys.stdout
        target.write(PROMPT_TEMPLATE.format(count=failed_streams))
        target.flush()
        answer = source.readline()
        return answer.strip().lower() == "y"

    return ask


__all__ = [
    "ContinuationDecision",
    "EARLY_ABORT_THRESHOLD",
    "PROMPT_TEMPLATE",
    "always_continue",
    "console_prompt",
    "decline",
]
