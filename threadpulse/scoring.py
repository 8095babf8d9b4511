# threadpulse/scoring.py

from __future__ import annotations

from typing import Iterable

# =========================================================
# SCORE TABLE
# =========================================================

BASE_SCORE = 100
HINT_PENALTY = 15          # per hint after the first
TIME_PENALTY_SECONDS = 6   # one point lost per 6 seconds
MAX_TIME_PENALTY = 35
STREAK_BONUS_DIVISOR = 2
MAX_STREAK_BONUS = 25
MIN_SCORE = 5              # every correct solve earns something

CORRECT_TILE = "🟩"
MISS_TILE = "🟥"


def compute_score(
    correct: bool,
    hints_used: int,
    time_seconds: float,
    streak_days: int,
) -> int:
    """
    Score for one solve. 0 when not correct, otherwise in [5, 125].

    Integer floor division throughout; negative time and streak count as 0.
    """
    if not correct:
        return 0

    time_seconds = max(0, time_seconds)
    streak_days = max(0, streak_days)

    hint_penalty = max(0, hints_used - 1) * HINT_PENALTY
    time_penalty = min(MAX_TIME_PENALTY, int(time_seconds // TIME_PENALTY_SECONDS))
    streak_bonus = min(MAX_STREAK_BONUS, streak_days // STREAK_BONUS_DIVISOR)

    return max(MIN_SCORE, BASE_SCORE - hint_penalty - time_penalty + streak_bonus)


# =========================================================
# RESULT TEXT
# =========================================================

def build_result_comment(correct: bool, score: int, answer: str, day_key: str) -> str:
    if correct:
        return f"I solved ThreadPulse Daily for {day_key} with {score} points."
    return f"I missed ThreadPulse Daily for {day_key}. The answer was {answer}."


def build_emoji_grid(results: Iterable[bool]) -> str:
    """One tile per guess, in order."""
    return "".join(CORRECT_TILE if correct else MISS_TILE for correct in results)


def build_share_text(day_key: str, results: Iterable[bool], won: bool, score: int, streak: int) -> str:
    grid = build_emoji_grid(results)
    if won:
        return (
            f"🧩 ThreadPulse Daily {day_key}\n\n"
            f"{grid}\n\n"
            f"Score: {score} | Streak: 🔥{streak}\n\n"
            "#ThreadPulseDaily"
        )
    return (
        f"🧩 ThreadPulse Daily {day_key}\n\n"
        f"{grid}\n\n"
        "Better luck tomorrow!\n\n"
        "#ThreadPulseDaily"
    )
