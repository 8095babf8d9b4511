# threadpulse/daily_seed.py
"""
Day key, seed and puzzle selection.

Everyone sees the same puzzle on the same UTC day:

    time -> day key -> FNV-1a seed -> Mulberry32 draw -> bank index

No schedule is stored anywhere. The arithmetic below must stay bit-exact
with the browser client, so every multiply and add is masked to 32 bits.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional, Sequence

from threadpulse.puzzles import EmptyBankError, Puzzle

log = logging.getLogger(__name__)

MASK_32 = 0xFFFFFFFF

FNV_OFFSET_BASIS = 2166136261
FNV_PRIME = 16777619

MULBERRY_INCREMENT = 0x6D2B79F5
TWO_POW_32 = 4294967296.0


@dataclass(frozen=True)
class DailySelection:
    day_key: str
    seed: int
    index: int
    puzzle: Puzzle


# =========================================================
# DAY KEYS
# =========================================================

def to_utc_day_key(now: Optional[datetime | date] = None) -> str:
    """
    Canonical day key (YYYY-MM-DD) for an instant, always in UTC.

    Naive datetimes are taken to already be UTC.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    if isinstance(now, datetime):
        if now.tzinfo is not None:
            now = now.astimezone(timezone.utc)
        day = now.date()
    else:
        day = now

    return f"{day.year:04d}-{day.month:02d}-{day.day:02d}"


def shift_day_key(day_key: str, days: int) -> str:
    return (date.fromisoformat(day_key) + timedelta(days=days)).isoformat()


# =========================================================
# HASH / PRNG
# =========================================================

def day_seed(day_key: str) -> int:
    """FNV-1a over the day key's code points, 32-bit unsigned."""
    value = FNV_OFFSET_BASIS
    for char in day_key:
        value ^= ord(char)
        value = (value * FNV_PRIME) & MASK_32
    return value & MASK_32


def mulberry32(seed: int) -> Callable[[], float]:
    state = seed & MASK_32

    def draw() -> float:
        nonlocal state
        state = (state + MULBERRY_INCREMENT) & MASK_32
        t = state
        v = ((t ^ (t >> 15)) * (t | 1)) & MASK_32
        v ^= (v + (((v ^ (v >> 7)) * (v | 61)) & MASK_32)) & MASK_32
        return ((v ^ (v >> 14)) & MASK_32) / TWO_POW_32

    return draw


# =========================================================
# SELECTION
# =========================================================

def compute_day_selection(
    now: Optional[datetime | date],
    bank: Sequence[Puzzle],
) -> DailySelection:
    """
    Pick today's puzzle. Exactly one draw is consumed per day.

    Raises EmptyBankError when there is nothing to pick from.
    """
    if not bank:
        raise EmptyBankError("Puzzle bank cannot be empty.")

    day_key = to_utc_day_key(now)
    seed = day_seed(day_key)
    rnd = mulberry32(seed)
    index = math.floor(rnd() * len(bank))

    log.debug("Daily selection %s: seed=%s index=%s", day_key, seed, index)
    return DailySelection(
        day_key=day_key,
        seed=seed,
        index=index,
        puzzle=bank[index],
    )
