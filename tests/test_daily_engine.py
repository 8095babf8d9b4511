import logging
import threading
from datetime import datetime, timezone

import pytest

from threadpulse.daily_engine import DailyEngine, GameStatus
from threadpulse.events import ClueSubmitted, GameCompleted
from threadpulse.puzzles import EmptyBankError
from threadpulse.storage import MemoryStore, clue_authors_key, clues_key, streak_key

PLAYER = "1001"
OTHER = "2002"


# =========================================================
# LIFECYCLE
# =========================================================

def test_start_day_initial_state(engine, clock):
    assert engine.status(PLAYER) is GameStatus.NOT_STARTED

    game = engine.start_day(PLAYER)

    assert game.day_key == "2026-02-04"
    assert game.puzzle.answer == "karma"
    assert game.state.hints_unlocked == 1
    assert game.state.guesses == []
    assert game.state.completed is False
    assert game.state.time_started == clock.now
    assert game.hints == ["t001 general"]
    assert engine.status(PLAYER) is GameStatus.IN_PROGRESS


def test_start_day_is_idempotent_within_a_day(engine, clock):
    first = engine.start_day(PLAYER)
    clock.advance(hours=3)
    assert engine.start_day(PLAYER) is first


def test_new_utc_day_starts_a_new_game(engine, clock):
    engine.submit_guess(PLAYER, "karma")
    clock.advance(days=1)

    assert engine.status(PLAYER) is GameStatus.NOT_STARTED
    outcome = engine.submit_guess(PLAYER, "wrong")
    assert outcome.accepted
    assert engine.get_game(PLAYER).day_key == "2026-02-05"


def test_yesterdays_game_is_kept_for_one_day(engine, clock):
    day_one = clock.now
    engine.start_day(PLAYER)

    clock.advance(days=1)
    engine.start_day(PLAYER)
    assert engine.get_game(PLAYER, now=day_one) is not None

    clock.advance(days=1)
    engine.start_day(PLAYER)
    assert engine.get_game(PLAYER, now=day_one) is None


def test_old_stored_clue_lists_are_pruned(single_bank, clock):
    store = MemoryStore({
        clues_key("2026-02-01"): [],
        clue_authors_key("2026-02-01"): ["9"],
        clues_key("2026-02-03"): [],
        streak_key("9"): {"last_solved_day": "2026-02-01", "streak_days": 4},
    })
    engine = DailyEngine(bank=single_bank, store=store, clock=clock)

    engine.start_day(PLAYER)

    assert sorted(store.keys()) == [clues_key("2026-02-03"), streak_key("9")]


def test_naive_and_aware_times_mix(engine, clock):
    engine.start_day(PLAYER)
    outcome = engine.submit_guess(PLAYER, "karma", now=datetime(2026, 2, 4, 12, 5))

    assert outcome.correct
    assert outcome.score == 65
    assert engine.get_game(PLAYER).state.guesses[0].timestamp.tzinfo is timezone.utc


def test_naive_clock_with_aware_now(single_bank, store):
    engine = DailyEngine(bank=single_bank, store=store, clock=lambda: datetime(2026, 2, 4, 12, 0))
    game = engine.start_day(PLAYER)
    assert game.state.time_started.tzinfo is timezone.utc

    outcome = engine.submit_guess(PLAYER, "karma", now=datetime(2026, 2, 4, 12, 1, tzinfo=timezone.utc))
    assert outcome.score == 90


def test_empty_bank_refuses_to_start(store):
    with pytest.raises(EmptyBankError):
        DailyEngine(bank=[], store=store)


def test_snapshot_shows_first_hint_only(engine):
    snapshot = engine.snapshot()
    assert snapshot.day_key == "2026-02-04"
    assert snapshot.puzzle_id == "t001"
    assert snapshot.public_hint == "t001 general"
    assert snapshot.subreddit_tags == ("r/test",)


# =========================================================
# GUESSING
# =========================================================

def test_correct_guess_completes_and_scores(engine, clock, store, sink):
    engine.start_day(PLAYER)
    clock.advance(seconds=30)

    outcome = engine.submit_guess(PLAYER, "  KARMA! ")

    assert outcome.accepted and outcome.correct
    assert outcome.score == 95  # 30s -> 5 point time penalty
    assert outcome.streak == 1

    game = engine.get_game(PLAYER)
    assert game.status is GameStatus.COMPLETED
    assert game.state.completed is True
    assert game.state.time_completed == clock.now
    assert game.state.guesses[-1].correct is True

    assert store.get(streak_key(PLAYER)) == {"last_solved_day": "2026-02-04", "streak_days": 1}
    assert sink.events == [GameCompleted(PLAYER, "2026-02-04", 95, 1, 1)]


def test_wrong_guess_keeps_score_and_streak(engine, sink):
    outcome = engine.submit_guess(PLAYER, "chaos")

    assert outcome.accepted
    assert not outcome.correct
    assert outcome.score == 0
    assert outcome.guesses_left == 5
    assert outcome.reason == "Not correct yet. 5 guesses left."

    game = engine.get_game(PLAYER)
    assert game.state.score == 0
    assert game.state.streak == 0
    assert sink.events == []


def test_duplicate_guess_is_rejected_without_state_change(engine):
    engine.submit_guess(PLAYER, "Chaos")
    outcome = engine.submit_guess(PLAYER, "c-h-a-o-s!")

    assert not outcome.accepted
    assert outcome.reason == "You already tried that guess."
    assert len(engine.get_game(PLAYER).state.guesses) == 1


def test_empty_guess_is_rejected_without_using_an_attempt(engine):
    outcome = engine.submit_guess(PLAYER, "?!")
    assert not outcome.accepted
    assert engine.get_game(PLAYER).state.guesses == []


def test_guess_after_completion_is_rejected(engine):
    engine.submit_guess(PLAYER, "karma")
    outcome = engine.submit_guess(PLAYER, "other")

    assert not outcome.accepted
    assert outcome.reason == "You already solved today's puzzle."
    assert len(engine.get_game(PLAYER).state.guesses) == 1


def test_six_misses_exhaust_the_day(engine):
    outcomes = [engine.submit_guess(PLAYER, f"wrong{i}") for i in range(6)]

    assert all(o.accepted for o in outcomes)
    assert outcomes[-1].reason == "Round complete. Try again on the next daily puzzle."
    assert engine.status(PLAYER) is GameStatus.EXHAUSTED

    seventh = engine.submit_guess(PLAYER, "karma")
    assert not seventh.accepted
    assert seventh.reason == "No guesses remaining for today."
    assert len(engine.get_game(PLAYER).state.guesses) == 6

    hint = engine.unlock_hint(PLAYER)
    assert not hint.accepted
    assert hint.hints_unlocked == 1


def test_elapsed_time_is_at_least_one_second(engine):
    outcome = engine.submit_guess(PLAYER, "karma")
    assert outcome.score == 100


# =========================================================
# HINTS
# =========================================================

def test_hints_unlock_one_at_a_time_up_to_three(engine):
    first = engine.unlock_hint(PLAYER)
    assert first.accepted and first.hints_unlocked == 2
    assert first.hints == ("t001 general", "t001 closer")

    second = engine.unlock_hint(PLAYER)
    assert second.hints_unlocked == 3

    third = engine.unlock_hint(PLAYER)
    assert not third.accepted
    assert third.reason == "All hints are already unlocked."
    assert third.hints_unlocked == 3
    assert engine.hints_for(PLAYER) == ["t001 general", "t001 closer", "t001 revealing"]


def test_hints_for_unstarted_player_is_first_hint(engine):
    assert engine.hints_for("nobody") == ["t001 general"]
    assert engine.status("nobody") is GameStatus.NOT_STARTED


def test_hints_in_use_reduce_the_score(engine):
    engine.unlock_hint(PLAYER)
    engine.unlock_hint(PLAYER)
    outcome = engine.submit_guess(PLAYER, "karma")

    assert outcome.score == 70
    assert engine.get_game(PLAYER).state.guesses[0].hints_used == 3


def test_hint_after_completion_is_rejected(engine):
    engine.submit_guess(PLAYER, "karma")
    outcome = engine.unlock_hint(PLAYER)
    assert not outcome.accepted
    assert outcome.hints_unlocked == 1


# =========================================================
# STREAKS
# =========================================================

def test_consecutive_days_extend_the_streak(engine, clock):
    assert engine.submit_guess(PLAYER, "karma").streak == 1

    clock.advance(days=1)
    game = engine.start_day(PLAYER)
    assert game.state.streak == 1
    assert engine.submit_guess(PLAYER, "karma").streak == 2

    clock.advance(days=2)
    assert engine.submit_guess(PLAYER, "karma").streak == 1


def test_persisted_streak_feeds_the_bonus(single_bank, clock):
    store = MemoryStore({streak_key(PLAYER): {"last_solved_day": "2026-02-03", "streak_days": 10}})
    engine = DailyEngine(bank=single_bank, store=store, clock=clock)

    outcome = engine.submit_guess(PLAYER, "karma")

    assert outcome.score == 105
    assert outcome.streak == 11


# =========================================================
# RESULT TEXT
# =========================================================

def test_share_text_only_after_the_round_ends(engine):
    engine.submit_guess(PLAYER, "nope")
    assert engine.share_text(PLAYER) is None
    assert engine.result_comment(PLAYER) is None

    engine.submit_guess(PLAYER, "karma")
    assert "🟥🟩" in engine.share_text(PLAYER)
    assert engine.result_comment(PLAYER).startswith("I solved ThreadPulse Daily for 2026-02-04")


# =========================================================
# COMMUNITY CLUES
# =========================================================

def test_submit_clue_creates_and_persists(engine, store, sink):
    outcome = engine.submit_clue(PLAYER, "  Internet points for good posts  ")

    assert outcome.accepted
    clue = outcome.clue
    assert clue.text == "Internet points for good posts"
    assert clue.author == PLAYER
    assert clue.upvotes == 1
    assert clue.mod_boost == 0
    assert clue.approved is True
    assert outcome.clues == (clue,)

    assert [c["id"] for c in store.get(clues_key("2026-02-04"))] == [clue.id]
    assert sink.events == [ClueSubmitted(PLAYER, "2026-02-04", clue.id, clue.text)]


def test_one_clue_per_player_per_day(engine, clock):
    assert engine.submit_clue(PLAYER, "Internet points for good posts").accepted

    second = engine.submit_clue(PLAYER, "Something completely different")
    assert not second.accepted
    assert second.reason == "You already submitted a clue for today."

    clock.advance(days=1)
    assert engine.submit_clue(PLAYER, "Something completely different").accepted


def test_invalid_clues_are_rejected_with_reason(engine):
    outcome = engine.submit_clue(PLAYER, "Rhymes with KARMA? no, it is karma")
    assert not outcome.accepted
    assert outcome.reason == "Clue cannot contain the answer."
    assert engine.clues() == []


def test_duplicate_clue_from_another_player(engine):
    engine.submit_clue(PLAYER, "Internet points, basically.")
    outcome = engine.submit_clue(OTHER, "internet points basically")
    assert not outcome.accepted
    assert outcome.reason == "This clue already exists for today."


def test_clues_survive_a_restart(engine, single_bank, store, clock):
    engine.submit_clue(PLAYER, "Internet points for good posts")

    restarted = DailyEngine(bank=single_bank, store=store, clock=clock)
    assert [c.text for c in restarted.clues()] == ["Internet points for good posts"]
    assert not restarted.submit_clue(PLAYER, "Another take on the same idea").accepted


def test_only_top_five_clues_are_kept(engine, clock):
    for i in range(6):
        clock.advance(minutes=1)
        assert engine.submit_clue(f"p{i}", f"Clue number {i} is here").accepted

    texts = [c.text for c in engine.clues()]
    assert len(texts) == 5
    assert texts[0] == "Clue number 5 is here"
    assert "Clue number 0 is here" not in texts

    # a dropped clue still counts as the player's clue for the day
    assert not engine.submit_clue("p0", "Trying for a second time").accepted


def test_upvotes_one_per_player(engine, clock):
    first = engine.submit_clue(PLAYER, "Internet points for good posts").clue
    clock.advance(minutes=1)
    engine.submit_clue(OTHER, "What you farm on the front page")

    assert engine.clues()[0].author == OTHER

    outcome = engine.upvote_clue(OTHER, first.id)
    assert outcome.accepted
    assert outcome.clue.upvotes == 2
    assert engine.clues()[0].id == first.id

    assert not engine.upvote_clue(OTHER, first.id).accepted
    assert not engine.upvote_clue(PLAYER, first.id).accepted
    assert not engine.upvote_clue(PLAYER, "missing").accepted


def test_mod_boost_outweighs_upvotes(engine, clock):
    boosted = engine.submit_clue(PLAYER, "Internet points for good posts").clue
    clock.advance(minutes=1)
    engine.submit_clue(OTHER, "What you farm on the front page")
    for voter in ("a", "b", "c"):
        engine.upvote_clue(voter, engine.clues()[0].id)

    # 1 + 2*3 beats 4 plain upvotes
    outcome = engine.boost_clue(boosted.id, amount=2)

    assert outcome.accepted
    assert outcome.clue.mod_boost == 2
    assert engine.clues()[0].id == boosted.id
    assert not engine.boost_clue(boosted.id, amount=0).accepted


# =========================================================
# FAILURES
# =========================================================

def test_storage_failures_never_block_play(single_bank, failing_store, clock, caplog):
    engine = DailyEngine(bank=single_bank, store=failing_store, clock=clock)

    with caplog.at_level(logging.WARNING):
        game = engine.start_day(PLAYER)
        assert game.state.streak == 0

        outcome = engine.submit_guess(PLAYER, "karma")
        assert outcome.correct
        assert outcome.streak == 1

        assert engine.submit_clue(OTHER, "Internet points for good posts").accepted
        assert [c.author for c in engine.clues()] == [OTHER]
        assert not engine.submit_clue(OTHER, "Another take on the same idea").accepted

    assert "Could not read streak" in caplog.text
    assert "Could not save clues" in caplog.text

def test_failed_writes_keep_accepted_clues(single_bank, read_only_store, clock, caplog):
    engine = DailyEngine(bank=single_bank, store=read_only_store, clock=clock)

    with caplog.at_level(logging.WARNING):
        assert engine.submit_clue(PLAYER, "Internet points for good posts").accepted

    assert [c.author for c in engine.clues()] == [PLAYER]

    second = engine.submit_clue(PLAYER, "Upvotes from strangers online")
    assert not second.accepted
    assert second.reason == "You already submitted a clue for today."

    engine.start_day(OTHER)
    assert [c.author for c in engine.clues()] == [PLAYER]
    assert "keeping it in memory" in caplog.text


def test_failed_writes_keep_the_streak(single_bank, read_only_store, clock):
    engine = DailyEngine(bank=single_bank, store=read_only_store, clock=clock)
    assert engine.submit_guess(PLAYER, "karma").streak == 1

    clock.advance(days=1)
    assert engine.start_day(PLAYER).state.streak == 1
    assert engine.submit_guess(PLAYER, "karma").streak == 2


def test_successful_write_returns_to_the_store(single_bank, clock):
    class FlakyStore(MemoryStore):
        fail = True

        def set(self, key, value):
            if self.fail:
                raise OSError("disk full")
            super().set(key, value)

    store = FlakyStore()
    engine = DailyEngine(bank=single_bank, store=store, clock=clock)
    engine.submit_clue(PLAYER, "Internet points for good posts")
    assert store.get(clues_key("2026-02-04")) is None

    store.fail = False
    first = engine.clues()[0]
    assert engine.upvote_clue(OTHER, first.id).accepted

    assert store.get(clues_key("2026-02-04"))[0]["upvotes"] == 2
    assert engine.clues()[0].upvotes == 2



def test_failing_event_sink_is_ignored(single_bank, store, clock, caplog):
    class BrokenSink:
        def publish(self, event):
            raise RuntimeError("host went away")

    engine = DailyEngine(bank=single_bank, store=store, events=BrokenSink(), clock=clock)

    with caplog.at_level(logging.WARNING):
        outcome = engine.submit_guess(PLAYER, "karma")

    assert outcome.correct
    assert engine.status(PLAYER) is GameStatus.COMPLETED
    assert "Event sink failed" in caplog.text


# =========================================================
# CONCURRENCY
# =========================================================

def test_concurrent_guesses_never_exceed_the_cap(engine):
    barrier = threading.Barrier(12)
    results = []

    def play(i):
        barrier.wait()
        results.append(engine.submit_guess(PLAYER, f"wrong{i}"))

    threads = [threading.Thread(target=play, args=(i,)) for i in range(12)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(1 for r in results if r.accepted) == 6
    assert len(engine.get_game(PLAYER).state.guesses) == 6


def test_concurrent_identical_guesses_count_once(engine):
    barrier = threading.Barrier(8)

    def play():
        barrier.wait()
        engine.submit_guess(PLAYER, "chaos")

    threads = [threading.Thread(target=play) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(engine.get_game(PLAYER).state.guesses) == 1
