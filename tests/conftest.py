"""Shared fixtures for the ThreadPulse test-suite."""

from datetime import datetime, timedelta, timezone

import pytest

from threadpulse.daily_engine import DailyEngine
from threadpulse.events import RecordingEventSink
from threadpulse.puzzles import Puzzle
from threadpulse.storage import MemoryStore


class FrozenClock:
    """Callable clock the tests can move forward by hand."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FailingStore:
    """Store whose every call fails like an unreachable disk."""

    def get(self, key, default=None):
        raise OSError("store unavailable")

    def set(self, key, value):
        raise OSError("store unavailable")

    def keys(self):
        raise OSError("store unavailable")

    def delete(self, key):
        raise OSError("store unavailable")


class ReadOnlyStore(MemoryStore):
    """Store that still reads but refuses every write, like a full disk."""

    def set(self, key, value):
        raise OSError("read-only file system")

    def delete(self, key):
        raise OSError("read-only file system")


def make_puzzle(pid: str, answer: str) -> Puzzle:
    return Puzzle(
        id=pid,
        answer=answer,
        category="test",
        title=f"Puzzle {pid}",
        hints=(f"{pid} general", f"{pid} closer", f"{pid} revealing"),
        subreddit_tags=("r/test",),
    )


@pytest.fixture
def single_bank():
    """One puzzle, so every day selects the same answer."""
    return (make_puzzle("t001", "karma"),)


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 2, 4, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def failing_store():
    return FailingStore()


@pytest.fixture
def read_only_store():
    return ReadOnlyStore()


@pytest.fixture
def sink():
    return RecordingEventSink()


@pytest.fixture
def engine(single_bank, store, sink, clock):
    return DailyEngine(bank=single_bank, store=store, events=sink, clock=clock)
