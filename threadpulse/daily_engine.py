# threadpulse/daily_engine.py

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from threadpulse.clues import (
    DEFAULT_CLUE_LIMIT,
    CommunityClue,
    rank_clues,
    validate_clue,
)
from threadpulse.daily_seed import DailySelection, compute_day_selection, shift_day_key, to_utc_day_key
from threadpulse.events import ClueSubmitted, EventSink, GameCompleted, NullEventSink, publish_safely
from threadpulse.guess import evaluate_guess, normalize_text
from threadpulse.puzzles import MAX_HINTS, EmptyBankError, Puzzle, get_hint_set
from threadpulse.scoring import build_result_comment, build_share_text, compute_score
from threadpulse.storage import KeyValueStore, clue_authors_key, clues_key, streak_key
from threadpulse.streaks import StreakRecord, advance_streak

log = logging.getLogger(__name__)

MAX_GUESSES = 6

# Storage failures the engine survives. Anything else is a bug.
STORE_ERRORS = (OSError, ValueError, TypeError)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =========================================================
# STATE
# =========================================================

class GameStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    EXHAUSTED = "exhausted"


@dataclass
class Guess:
    text: str
    timestamp: datetime
    hints_used: int
    correct: bool
    score: int = 0

    @property
    def normalized(self) -> str:
        return normalize_text(self.text)


@dataclass
class PlayerDailyState:
    time_started: datetime
    guesses: List[Guess] = field(default_factory=list)
    hints_unlocked: int = 1
    score: int = 0
    completed: bool = False
    time_completed: Optional[datetime] = None
    streak: int = 0

    @property
    def guesses_left(self) -> int:
        return max(0, MAX_GUESSES - len(self.guesses))

    @property
    def status(self) -> GameStatus:
        if self.completed:
            return GameStatus.COMPLETED
        if len(self.guesses) >= MAX_GUESSES:
            return GameStatus.EXHAUSTED
        return GameStatus.IN_PROGRESS


@dataclass
class DailyGame:
    player_id: str
    selection: DailySelection
    state: PlayerDailyState

    @property
    def day_key(self) -> str:
        return self.selection.day_key

    @property
    def puzzle(self) -> Puzzle:
        return self.selection.puzzle

    @property
    def status(self) -> GameStatus:
        return self.state.status

    @property
    def hints(self) -> List[str]:
        return get_hint_set(self.puzzle, self.state.hints_unlocked)


@dataclass(frozen=True)
class DailySnapshot:
    day_key: str
    puzzle_id: str
    title: str
    category: str
    subreddit_tags: Tuple[str, ...]
    public_hint: str


# =========================================================
# OUTCOMES
# =========================================================

@dataclass(frozen=True)
class GuessOutcome:
    accepted: bool
    reason: str
    correct: bool = False
    score: int = 0
    guesses_left: int = 0
    streak: int = 0


@dataclass(frozen=True)
class HintOutcome:
    accepted: bool
    reason: str
    hints_unlocked: int
    hints: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ClueOutcome:
    accepted: bool
    reason: str
    clue: Optional[CommunityClue] = None
    clues: Tuple[CommunityClue, ...] = ()


# =========================================================
# ENGINE
# =========================================================

class DailyEngine:
    """
    Authoritative DAILY game engine.

    Owns every player's state for the current day. Reads and writes for one
    (player, day) are serialized by a lock of their own; the shared clue
    list for a day has a separate lock.
    """

    def __init__(
        self,
        bank: Sequence[Puzzle],
        store: KeyValueStore,
        events: Optional[EventSink] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if not bank:
            raise EmptyBankError("Puzzle bank cannot be empty.")

        self.bank: Tuple[Puzzle, ...] = tuple(bank)
        self.store = store
        self.events: EventSink = events or NullEventSink()
        self._clock = clock or _utcnow

        self._games: Dict[Tuple[str, str], DailyGame] = {}
        self._streaks: Dict[str, StreakRecord] = {}
        self._clues: Dict[str, List[CommunityClue]] = {}
        self._clue_authors: Dict[str, List[str]] = {}

        # Store keys whose latest value only lives in memory
        self._unsaved: Set[str] = set()
        self._store_pruned_for: Optional[str] = None

        self._registry_lock = threading.Lock()
        self._player_locks: Dict[Tuple[str, str], threading.Lock] = {}
        self._day_locks: Dict[str, threading.Lock] = {}

    # -------------------------
    # Locks / time
    # -------------------------

    def _now(self, now: Optional[datetime]) -> datetime:
        """Current instant as an aware UTC datetime. Naive values are taken as UTC."""
        value = now if now is not None else self._clock()
        if not isinstance(value, datetime):
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def _player_lock(self, player_id: str, day_key: str) -> threading.Lock:
        with self._registry_lock:
            return self._player_locks.setdefault((player_id, day_key), threading.Lock())

    def _day_lock(self, day_key: str) -> threading.Lock:
        with self._registry_lock:
            return self._day_locks.setdefault(day_key, threading.Lock())

    # -------------------------
    # Selection
    # -------------------------

    def selection(self, now: Optional[datetime | date] = None) -> DailySelection:
        return compute_day_selection(self._now(now), self.bank)

    def snapshot(self, now: Optional[datetime] = None) -> DailySnapshot:
        selection = self.selection(now)
        puzzle = selection.puzzle
        return DailySnapshot(
            day_key=selection.day_key,
            puzzle_id=puzzle.id,
            title=puzzle.title,
            category=puzzle.category,
            subreddit_tags=puzzle.subreddit_tags,
            public_hint=puzzle.hints[0],
        )

    # -------------------------
    # Session lifecycle
    # -------------------------

    def start_day(self, player_id: str, now: Optional[datetime] = None) -> DailyGame:
        """
        Get or create the player's game for today.

        Calling again on the same day returns the same game; a new UTC day
        starts a fresh one.
        """
        now = self._now(now)
        selection = self.selection(now)
        key = (player_id, selection.day_key)

        with self._player_lock(*key):
            game = self._games.get(key)
            if game is not None:
                return game

            record = self._read_streak(player_id)
            game = DailyGame(
                player_id=player_id,
                selection=selection,
                state=PlayerDailyState(time_started=now, streak=record.streak_days),
            )
            self._games[key] = game

        with self._day_lock(selection.day_key):
            self._read_clues(selection.day_key)
        self._prune(selection.day_key)
        log.info("Player %s started %s (%s)", player_id, selection.day_key, selection.puzzle.id)
        return game

    def get_game(self, player_id: str, now: Optional[datetime] = None) -> Optional[DailyGame]:
        day_key = to_utc_day_key(self._now(now))
        return self._games.get((player_id, day_key))

    def status(self, player_id: str, now: Optional[datetime] = None) -> GameStatus:
        game = self.get_game(player_id, now)
        return game.status if game else GameStatus.NOT_STARTED

    def hints_for(self, player_id: str, now: Optional[datetime] = None) -> List[str]:
        """Hints the player can see today. Players who have not started see the first one."""
        game = self.get_game(player_id, now)
        if game is None:
            return get_hint_set(self.selection(now).puzzle, 1)
        return game.hints

    def _prune(self, day_key: str) -> None:
        """
        Drop sessions and clue lists older than yesterday.

        Yesterday is kept so calls that carry their own pre-midnight `now`
        still find their game. Calls without one always open today.
        """
        oldest = shift_day_key(day_key, -1)
        with self._registry_lock:
            for key in [k for k in self._games if k[1] < oldest]:
                del self._games[key]
                self._player_locks.pop(key, None)
            for day in [d for d in {*self._clues, *self._clue_authors} if d < oldest]:
                self._clues.pop(day, None)
                self._clue_authors.pop(day, None)
                self._day_locks.pop(day, None)
                self._unsaved.discard(clues_key(day))
                self._unsaved.discard(clue_authors_key(day))

            if self._store_pruned_for == day_key:
                return
            self._store_pruned_for = day_key

        self._prune_store(oldest)

    def _prune_store(self, oldest: str) -> None:
        """Delete persisted clue lists older than `oldest`. Streaks are kept."""
        try:
            stale = [k for k in self.store.keys() if k.startswith("clues:") and k.split(":")[1] < oldest]
            for key in stale:
                self.store.delete(key)
        except STORE_ERRORS:
            log.warning("Could not prune stored clues before %s", oldest, exc_info=True)
            return

        if stale:
            log.info("Pruned %s stored clue keys before %s", len(stale), oldest)

    # -------------------------
    # Gameplay
    # -------------------------

    def submit_guess(self, player_id: str, guess: str, now: Optional[datetime] = None) -> GuessOutcome:
        now = self._now(now)
        game = self.start_day(player_id, now)
        state = game.state

        with self._player_lock(player_id, game.day_key):
            if state.completed:
                return GuessOutcome(False, "You already solved today's puzzle.",
                                    score=state.score, streak=state.streak)

            if len(state.guesses) >= MAX_GUESSES:
                return GuessOutcome(False, "No guesses remaining for today.", streak=state.streak)

            evaluation = evaluate_guess(guess, game.puzzle.answer)
            if not evaluation.normalized_guess:
                return GuessOutcome(False, "Enter a guess with at least one letter or number.",
                                    guesses_left=state.guesses_left, streak=state.streak)

            if any(g.normalized == evaluation.normalized_guess for g in state.guesses):
                return GuessOutcome(False, "You already tried that guess.",
                                    guesses_left=state.guesses_left, streak=state.streak)

            elapsed = max(1, round((now - state.time_started).total_seconds()))
            score = compute_score(
                correct=evaluation.correct,
                hints_used=state.hints_unlocked,
                time_seconds=elapsed,
                streak_days=state.streak,
            )

            state.guesses.append(Guess(
                text=guess,
                timestamp=now,
                hints_used=state.hints_unlocked,
                correct=evaluation.correct,
                score=score,
            ))

            if not evaluation.correct:
                if state.guesses_left == 0:
                    reason = "Round complete. Try again on the next daily puzzle."
                else:
                    reason = f"Not correct yet. {state.guesses_left} guesses left."
                return GuessOutcome(True, reason, guesses_left=state.guesses_left, streak=state.streak)

            state.completed = True
            state.time_completed = now
            state.score = score
            state.streak = self._record_win(player_id, game.day_key)

            event = GameCompleted(
                player_id=player_id,
                day_key=game.day_key,
                score=score,
                guesses=len(state.guesses),
                streak=state.streak,
            )

        publish_safely(self.events, event)
        log.info("Player %s solved %s in %s guesses (%s points)",
                 player_id, game.day_key, event.guesses, score)
        return GuessOutcome(True, "Solved!", correct=True, score=score,
                            guesses_left=state.guesses_left, streak=state.streak)

    def unlock_hint(self, player_id: str, now: Optional[datetime] = None) -> HintOutcome:
        game = self.start_day(player_id, now)
        state = game.state

        with self._player_lock(player_id, game.day_key):
            if state.completed:
                reason = "You already solved today's puzzle."
            elif len(state.guesses) >= MAX_GUESSES:
                reason = "No guesses remaining for today."
            elif state.hints_unlocked >= MAX_HINTS:
                reason = "All hints are already unlocked."
            else:
                state.hints_unlocked += 1
                return HintOutcome(True, "Hint unlocked.", state.hints_unlocked, tuple(game.hints))

            return HintOutcome(False, reason, state.hints_unlocked, tuple(game.hints))

    def result_comment(self, player_id: str, now: Optional[datetime] = None) -> Optional[str]:
        game = self.get_game(player_id, now)
        if game is None or game.status in (GameStatus.IN_PROGRESS, GameStatus.NOT_STARTED):
            return None
        return build_result_comment(
            correct=game.state.completed,
            score=game.state.score,
            answer=game.puzzle.answer,
            day_key=game.day_key,
        )

    def share_text(self, player_id: str, now: Optional[datetime] = None) -> Optional[str]:
        game = self.get_game(player_id, now)
        if game is None or game.status in (GameStatus.IN_PROGRESS, GameStatus.NOT_STARTED):
            return None
        return build_share_text(
            day_key=game.day_key,
            results=[g.correct for g in game.state.guesses],
            won=game.state.completed,
            score=game.state.score,
            streak=game.state.streak,
        )

    # -------------------------
    # Community clues
    # -------------------------

    def clues(self, now: Optional[datetime] = None) -> List[CommunityClue]:
        day_key = to_utc_day_key(self._now(now))
        with self._day_lock(day_key):
            return list(self._read_clues(day_key))

    def submit_clue(self, player_id: str, text: str, now: Optional[datetime] = None) -> ClueOutcome:
        now = self._now(now)
        game = self.start_day(player_id, now)
        day_key = game.day_key

        with self._day_lock(day_key):
            current = self._read_clues(day_key)
            authors = self._read_clue_authors(day_key)

            if player_id in authors or any(c.author == player_id for c in current):
                return ClueOutcome(False, "You already submitted a clue for today.", clues=tuple(current))

            validation = validate_clue(
                text,
                forbidden_words=[game.puzzle.answer],
                existing_clues=[c.text for c in current],
            )
            if not validation.valid:
                return ClueOutcome(False, validation.reason, clues=tuple(current))

            clue = CommunityClue(
                id=uuid.uuid4().hex,
                text=text.strip(),
                author=player_id,
                upvotes=1,
                mod_boost=0,
                created_at=now,
                approved=True,
                voters=[player_id],
            )
            ranked = rank_clues([*current, clue], DEFAULT_CLUE_LIMIT)
            self._write_clues(day_key, ranked)
            self._write_clue_authors(day_key, [*authors, player_id])

        publish_safely(self.events, ClueSubmitted(
            player_id=player_id,
            day_key=day_key,
            clue_id=clue.id,
            text=clue.text,
        ))
        return ClueOutcome(True, "Clue added.", clue=clue, clues=tuple(ranked))

    def upvote_clue(self, player_id: str, clue_id: str, now: Optional[datetime] = None) -> ClueOutcome:
        day_key = to_utc_day_key(self._now(now))

        with self._day_lock(day_key):
            current = self._read_clues(day_key)
            clue = next((c for c in current if c.id == clue_id), None)

            if clue is None:
                return ClueOutcome(False, "That clue is not available today.", clues=tuple(current))
            if player_id in clue.voters:
                return ClueOutcome(False, "You already upvoted that clue.", clue=clue, clues=tuple(current))

            clue.upvotes += 1
            clue.voters.append(player_id)
            ranked = rank_clues(current, DEFAULT_CLUE_LIMIT)
            self._write_clues(day_key, ranked)

        return ClueOutcome(True, "Upvoted.", clue=clue, clues=tuple(ranked))

    def boost_clue(self, clue_id: str, amount: int = 1, now: Optional[datetime] = None) -> ClueOutcome:
        """Moderator boost. Each point counts as three upvotes."""
        day_key = to_utc_day_key(self._now(now))

        with self._day_lock(day_key):
            current = self._read_clues(day_key)
            clue = next((c for c in current if c.id == clue_id), None)

            if clue is None:
                return ClueOutcome(False, "That clue is not available today.", clues=tuple(current))
            if amount < 1:
                return ClueOutcome(False, "Boost must be at least 1.", clue=clue, clues=tuple(current))

            clue.mod_boost += amount
            ranked = rank_clues(current, DEFAULT_CLUE_LIMIT)
            self._write_clues(day_key, ranked)

        return ClueOutcome(True, "Boosted.", clue=clue, clues=tuple(ranked))

    # -------------------------
    # Persistence (best effort)
    # -------------------------
    # A key whose last write failed is served from memory until a later
    # write succeeds, so the store never rolls back accepted changes.

    def _save(self, key: str, value: Any) -> bool:
        try:
            self.store.set(key, value)
        except STORE_ERRORS:
            self._unsaved.add(key)
            log.warning("Could not save %s; keeping it in memory", key, exc_info=True)
            return False

        self._unsaved.discard(key)
        return True

    def _read_streak(self, player_id: str) -> StreakRecord:
        key = streak_key(player_id)
        if key in self._unsaved:
            return self._streaks.get(player_id, StreakRecord())

        try:
            record = StreakRecord.from_dict(self.store.get(key))
        except STORE_ERRORS:
            log.warning("Could not read streak for %s", player_id, exc_info=True)
            return self._streaks.get(player_id, StreakRecord())

        self._streaks[player_id] = record
        return record

    def _record_win(self, player_id: str, day_key: str) -> int:
        record = self._read_streak(player_id)
        updated = advance_streak(record, day_key)
        self._streaks[player_id] = updated

        if updated is not record:
            self._save(streak_key(player_id), updated.to_dict())

        return updated.streak_days

    def _read_clues(self, day_key: str) -> List[CommunityClue]:
        if clues_key(day_key) in self._unsaved:
            return self._clues.get(day_key, [])

        try:
            raw = self.store.get(clues_key(day_key), [])
            if not isinstance(raw, list):
                raise ValueError(f"Stored clues for {day_key} are not a list")
            clues = [c for c in (CommunityClue.from_dict(item) for item in raw if isinstance(item, dict)) if c]
        except STORE_ERRORS:
            log.warning("Could not read clues for %s", day_key, exc_info=True)
            return self._clues.get(day_key, [])

        self._clues[day_key] = clues
        return clues

    def _write_clues(self, day_key: str, clues: List[CommunityClue]) -> None:
        self._clues[day_key] = list(clues)
        self._save(clues_key(day_key), [c.to_dict() for c in clues])

    def _read_clue_authors(self, day_key: str) -> List[str]:
        if clue_authors_key(day_key) in self._unsaved:
            return self._clue_authors.get(day_key, [])

        try:
            raw = self.store.get(clue_authors_key(day_key), [])
        except STORE_ERRORS:
            log.warning("Could not read clue authors for %s", day_key, exc_info=True)
            return self._clue_authors.get(day_key, [])

        authors = [str(a) for a in raw] if isinstance(raw, list) else []
        self._clue_authors[day_key] = authors
        return authors

    def _write_clue_authors(self, day_key: str, authors: List[str]) -> None:
        self._clue_authors[day_key] = list(authors)
        self._save(clue_authors_key(day_key), authors)
