# threadpulse/puzzles.py

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from threadpulse.guess import normalize_text

log = logging.getLogger(__name__)

# =========================================================
# BASE PATHS
# =========================================================

DEFAULT_BANK_FILE = Path(__file__).resolve().parent / "puzzle_bank.json"

MAX_HINTS = 3


# =========================================================
# ERRORS
# =========================================================

class PuzzleBankError(Exception):
    """The puzzle bank is missing or malformed. Fatal at startup."""


class EmptyBankError(PuzzleBankError):
    pass


# =========================================================
# MODEL
# =========================================================

@dataclass(frozen=True)
class Puzzle:
    id: str
    answer: str
    category: str
    title: str
    hints: Tuple[str, ...]
    subreddit_tags: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Puzzle":
        try:
            puzzle = cls(
                id=str(raw["id"]),
                answer=str(raw["answer"]),
                category=str(raw.get("category", "")),
                title=str(raw.get("title", "")),
                hints=tuple(str(h) for h in raw.get("hints", [])),
                subreddit_tags=tuple(str(t) for t in raw.get("subreddit_tags", [])),
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise PuzzleBankError(f"Malformed puzzle entry: {raw!r}") from e

        if not puzzle.hints or len(puzzle.hints) > MAX_HINTS:
            raise PuzzleBankError(f"Puzzle {puzzle.id} must have 1-{MAX_HINTS} hints")
        if not normalize_text(puzzle.answer):
            raise PuzzleBankError(f"Puzzle {puzzle.id} has an empty answer")

        return puzzle


def get_hint_set(puzzle: Puzzle, hints_unlocked: int = 1) -> List[str]:
    """First `hints_unlocked` hints, always at least one and at most three."""
    count = max(1, min(MAX_HINTS, hints_unlocked))
    return list(puzzle.hints[:count])


# =========================================================
# LOADING
# =========================================================

def _read_bank(path: Path) -> List[Dict[str, Any]]:
    if not path.exists():
        raise PuzzleBankError(f"Missing puzzle bank: {path}")

    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise PuzzleBankError(f"Puzzle bank is not valid JSON: {path}") from e

    if not isinstance(data, list):
        raise PuzzleBankError(f"Puzzle bank must be a JSON list: {path}")
    return data


@lru_cache(maxsize=4)
def load_puzzle_bank(path: Optional[Path] = None) -> Tuple[Puzzle, ...]:
    """
    Load the bank once. The result is immutable and order matters:
    reordering the file changes every future daily pick.
    """
    path = Path(path) if path else DEFAULT_BANK_FILE
    bank = tuple(Puzzle.from_dict(raw) for raw in _read_bank(path))

    if not bank:
        raise EmptyBankError(f"Puzzle bank cannot be empty: {path}")

    ids = [p.id for p in bank]
    if len(set(ids)) != len(ids):
        raise PuzzleBankError(f"Puzzle bank has duplicate ids: {path}")

    log.info("Loaded %s puzzles from %s", len(bank), path)
    return bank
