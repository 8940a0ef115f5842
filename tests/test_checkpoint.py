from __future__ import annotations

import io

import pytest

from nistcheck.checkpoint import always_continue, console_prompt, decline


@pytest.mark.parametrize(
    "answer, expected",
    [("y\n", True), ("Y\n", True), (" y \n", True), ("n\n", False), ("\n", False), ("", False), ("yes\n", False)],
)
def test_console_prompt_only_accepts_y(answer: str, expected: bool) -> None:
    stdout = io.StringIO()
    decide = console_prompt(stdin=io.StringIO(answer), stdout=stdout)

    assert decide(3) is expected
    assert stdout.getvalue() == "Frequency test resulted in non-randomness of 3 sequence(s). Continue? (y/N) "


def test_fixed_decisions() -> None:
    assert decline(1) is False
    assert always_continue(1) is True
