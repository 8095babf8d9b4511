# threadpulse/clues.py
"""
Community clues
===============

Players may leave one clue per day for everyone else. Clues are checked
against a short list of content rules and the best few are shown.

Rules run in order and the first failure wins:
- 8 to 180 characters after trimming
- no links
- must not contain the answer (compared as normalized text)
- must not duplicate an existing clue for the day

Answer and duplicate checks use normalized substring / equality matching,
so a clue that merely contains the answer inside a longer word is rejected
too. That is accepted behaviour.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from threadpulse.guess import normalize_text

# ================================================================
# RULES
# ================================================================

MIN_CLUE_LENGTH = 8
MAX_CLUE_LENGTH = 180
DEFAULT_CLUE_LIMIT = 5
MOD_BOOST_WEIGHT = 3

BLOCKED_TERMS = (
    "http://",
    "https://",
    "www.",
    "discord.gg",
    "t.me/",
    "bit.ly",
)

REASONS = {
    "ok": "ok",
    "too_short": f"Clue must be at least {MIN_CLUE_LENGTH} characters.",
    "too_long": f"Clue must be {MAX_CLUE_LENGTH} characters or fewer.",
    "links": "Links are not allowed in clues.",
    "contains_answer": "Clue cannot contain the answer.",
    "duplicate": "This clue already exists for today.",
}


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: str
    code: str

    @classmethod
    def from_code(cls, code: str) -> "ValidationResult":
        return cls(valid=code == "ok", reason=REASONS[code], code=code)


# ================================================================
# MODEL
# ================================================================

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CommunityClue:
    id: str
    text: str
    author: str
    upvotes: int = 1
    mod_boost: int = 0
    created_at: datetime = field(default_factory=_utcnow)
    approved: bool = True
    voters: List[str] = field(default_factory=list)

    @property
    def rank_score(self) -> int:
        return clue_rank_score(self)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> Optional["CommunityClue"]:
        """Tolerant loader; stored entries that cannot be read are dropped."""
        try:
            created_at = datetime.fromisoformat(raw["created_at"])
            if created_at.tzinfo is None:
                created_at = created_at.replace(tzinfo=timezone.utc)
            return cls(
                id=str(raw["id"]),
                text=str(raw["text"]),
                author=str(raw["author"]),
                upvotes=max(0, int(raw.get("upvotes", 0))),
                mod_boost=max(0, int(raw.get("mod_boost", 0))),
                created_at=created_at,
                approved=bool(raw.get("approved", True)),
                voters=[str(v) for v in raw.get("voters", [])],
            )
        except (KeyError, TypeError, ValueError):
            return None


# ================================================================
# VALIDATION
# ================================================================

def validate_clue(
    text: str,
    forbidden_words: Iterable[str] = (),
    existing_clues: Iterable[str] = (),
) -> ValidationResult:
    raw = str(text or "").strip()

    if len(raw) < MIN_CLUE_LENGTH:
        return ValidationResult.from_code("too_short")

    if len(raw) > MAX_CLUE_LENGTH:
        return ValidationResult.from_code("too_long")

    lower = raw.lower()
    if any(term in lower for term in BLOCKED_TERMS):
        return ValidationResult.from_code("links")

    normalized = normalize_text(raw)
    for word in forbidden_words:
        normalized_word = normalize_text(word)
        if normalized_word and normalized_word in normalized:
            return ValidationResult.from_code("contains_answer")

    if any(normalize_text(existing) == normalized for existing in existing_clues):
        return ValidationResult.from_code("duplicate")

    return ValidationResult.from_code("ok")


# ================================================================
# RANKING
# ================================================================

def clue_rank_score(clue: CommunityClue) -> int:
    return max(0, clue.upvotes) + max(0, clue.mod_boost) * MOD_BOOST_WEIGHT


def rank_clues(clues: Sequence[CommunityClue], limit: int = DEFAULT_CLUE_LIMIT) -> List[CommunityClue]:
    """
    Highest (upvotes + 3 * mod_boost) first, newest first on ties.

    Entries that no longer pass validation are dropped before sorting.
    sorted() is stable, so equal inputs always come back in the same order.
    """
    candidates = [
        clue
        for clue in clues
        if clue is not None
        and isinstance(clue.text, str)
        and validate_clue(clue.text).valid
    ]

    ranked = sorted(
        candidates,
        key=lambda c: (clue_rank_score(c), c.created_at.timestamp()),
        reverse=True,
    )
    return ranked[: max(0, limit)]
