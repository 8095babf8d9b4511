# threadpulse/events.py
"""
Outbound events for the host (leaderboard storage, channel announcements).

Publishing is fire-and-forget: the engine never waits on a sink and a
failing sink never affects the game.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Protocol, Union

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class GameCompleted:
    player_id: str
    day_key: str
    score: int
    guesses: int
    streak: int


@dataclass(frozen=True)
class ClueSubmitted:
    player_id: str
    day_key: str
    clue_id: str
    text: str


GameEvent = Union[GameCompleted, ClueSubmitted]


class EventSink(Protocol):
    def publish(self, event: GameEvent) -> None:
        ...


class NullEventSink:
    def publish(self, event: GameEvent) -> None:
        log.debug("Dropping event %s", event)


class RecordingEventSink:
    def __init__(self):
        self.events: List[GameEvent] = []

    def publish(self, event: GameEvent) -> None:
        self.events.append(event)


def publish_safely(sink: EventSink, event: GameEvent) -> None:
    try:
        sink.publish(event)
    except Exception:
        log.warning("Event sink failed for %s", type(event).__name__, exc_info=True)
