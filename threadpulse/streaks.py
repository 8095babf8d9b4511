from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from threadpulse.daily_seed import shift_day_key


@dataclass(frozen=True)
class StreakRecord:
    last_solved_day: Optional[str] = None
    streak_days: int = 0

    @classmethod
    def from_dict(cls, raw: Any) -> "StreakRecord":
        if not isinstance(raw, dict):
            return cls()

        last = raw.get("last_solved_day")
        try:
            days = max(0, int(raw.get("streak_days") or 0))
        except (TypeError, ValueError):
            days = 0

        return cls(
            last_solved_day=last if isinstance(last, str) else None,
            streak_days=days,
        )

    def to_dict(self) -> dict:
        return {
            "last_solved_day": self.last_solved_day,
            "streak_days": self.streak_days,
        }


def advance_streak(record: StreakRecord, day_key: str) -> StreakRecord:
    """
    Same day solved twice: unchanged.
    Solved the day after the last solve: +1.
    Anything else: back to 1.
    """
    if record.last_solved_day == day_key:
        return record

    if record.last_solved_day == shift_day_key(day_key, -1):
        return StreakRecord(last_solved_day=day_key, streak_days=record.streak_days + 1)

    return StreakRecord(last_solved_day=day_key, streak_days=1)
