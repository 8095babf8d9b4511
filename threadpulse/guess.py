from __future__ import annotations

import re
from dataclasses import dataclass

_NON_ALNUM = re.compile(r"[^a-z0-9]")


@dataclass(frozen=True)
class GuessEvaluation:
    normalized_guess: str
    normalized_answer: str
    correct: bool


def normalize_text(value: str | None = "") -> str:
    """Lower-case, ASCII letters and digits only."""
    return _NON_ALNUM.sub("", (value or "").lower()).strip()


def evaluate_guess(guess: str, answer: str) -> GuessEvaluation:
    """
    Strict comparison: no partial credit, no near matches.
    An empty guess is never correct.
    """
    normalized_guess = normalize_text(guess)
    normalized_answer = normalize_text(answer)
    return GuessEvaluation(
        normalized_guess=normalized_guess,
        normalized_answer=normalized_answer,
        correct=bool(normalized_guess) and normalized_guess == normalized_answer,
    )
