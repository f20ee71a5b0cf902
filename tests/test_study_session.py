"""
Tests for the study session coordinator.

Uses the in-memory record store so each scenario controls storage
failures, slow writes, and the clock.
"""

import asyncio
from datetime import timedelta

import pytest

from memoracard.errors import InvalidStateError, SessionBusyError, SnapshotError, StorageError
from memoracard.schemas import CardRating, SessionState, SessionStats
from memoracard.study_session import SessionStatus, StudySession, start_study_session
from tests.conftest import T0, MemoryRecordStore, make_card


def queue_ids(session):
    return [c.id for c in session.snapshot().queue]


async def started(store, clock, cards, deck_id="deck-1"):
    return await StudySession(store, clock=clock).start(deck_id, cards)


class TestStart:

    async def test_fresh_start_sorts_and_checkpoints(self, store, clock):
        cards = [
            make_card("later", due=T0 + timedelta(days=2)),
            make_card("due", due=T0 - timedelta(days=1)),
        ]
        session = await started(store, clock, cards)

        assert session.status == SessionStatus.ACTIVE
        assert not session.resumed
        assert session.total_session_cards == 2
        assert queue_ids(session) == ["due", "later"]
        assert session.current_card().id == "due"
        assert session.progress() == 0.0
        assert [c.id for c in store.snapshot.queue] == ["due", "later"]

    async def test_start_twice_is_rejected(self, store, clock, cards):
        session = await started(store, clock, cards)
        with pytest.raises(InvalidStateError):
            await session.start("deck-1", cards)

    async def test_empty_deck(self, store, clock):
        session = await started(store, clock, [])
        assert session.current_card() is None
        assert not session.is_finished()
        assert session.progress() == 1.0
        assert session.status == SessionStatus.ACTIVE
        assert store.snapshot is None
        with pytest.raises(InvalidStateError):
            await session.rate(CardRating.GOOD)
        with pytest.raises(InvalidStateError):
            session.summary()

        await session.exit()
        assert session.status == SessionStatus.INITIALIZING

    async def test_snapshot_for_other_deck_is_ignored(self, store, clock, cards):
        store.snapshot = SessionState(deck_id="deck-2", queue=[make_card("x", deck_id="deck-2")], total_session_cards=1)
        session = await started(store, clock, cards)
        assert not session.resumed
        assert queue_ids(session) == ["card1", "card2", "card3"]

    async def test_storage_failure_leaves_session_initializing(self, store, clock, cards):
        store.fail.add("get_session_snapshot")
        session = StudySession(store, clock=clock)
        with pytest.raises(StorageError):
            await session.start("deck-1", cards)
        assert session.status == SessionStatus.INITIALIZING

    async def test_start_study_session_loads_cards_from_store(self, store, clock):
        session = await start_study_session(store, "deck-1", clock=clock)
        assert session.remaining_count() == 3
        assert "get_cards_for_deck" in store.calls


class TestRatingFlow:

    async def test_again_good_good_scenario(self, store, clock, cards):
        session = await started(store, clock, cards)

        await session.rate(CardRating.AGAIN)
        assert queue_ids(session) == ["card2", "card3", "card1"]
        assert session.progress() == 0.0

        await session.rate(CardRating.GOOD)
        assert queue_ids(session) == ["card3", "card1"]
        assert session.progress() == pytest.approx(1 / 3)

        await session.rate(CardRating.GOOD)
        assert queue_ids(session) == ["card1"]
        assert session.progress() == pytest.approx(2 / 3)
        assert not session.is_finished()

        assert session.stats.total_studied == 3
        assert session.stats.correct_count == 2
        assert session.stats.incorrect_count == 1
        assert session.stats.cards_by_rating == {"again": 1, "hard": 0, "good": 2, "easy": 0}

    async def test_single_card_easy_finishes(self, clock):
        store = MemoryRecordStore([make_card("only")])
        session = await started(store, clock, list(store.cards.values()))
        clock.advance(seconds=75)

        await session.rate(CardRating.EASY)

        assert session.is_finished()
        assert session.current_card() is None
        assert session.progress() == 1.0
        summary = session.summary()
        assert summary.total_studied == 1
        assert summary.correct_count == 1
        assert summary.incorrect_count == 0
        assert summary.accuracy == 100
        assert summary.duration_seconds == 75
        assert summary.cards_by_rating["easy"] == 1
        assert store.last_studied["deck-1"] == clock.now
        assert store.snapshot is None

    async def test_rating_is_persisted_before_queue_moves(self, store, clock, cards):
        session = await started(store, clock, cards)
        updated = await session.rate(CardRating.GOOD)

        assert updated.id == "card1"
        assert store.cards["card1"].repetition == 1
        assert store.cards["card1"].due_date == T0 + timedelta(days=1)
        assert store.snapshot.stats.total_studied == 1

    async def test_requeued_card_carries_its_new_schedule(self, store, clock, cards):
        session = await started(store, clock, cards)
        await session.rate(CardRating.AGAIN)
        tail = session.snapshot().queue[-1]
        assert tail.id == "card1"
        assert tail.interval == 1
        assert tail.last_reviewed == T0

    async def test_progress_never_goes_backwards(self, store, clock, cards):
        session = await started(store, clock, cards)
        seen = [session.progress()]
        for rating in ["again", "again", "good", "again", "hard", "again", "easy"]:
            if session.is_finished():
                break
            await session.rate(rating)
            seen.append(session.progress())
        assert seen == sorted(seen)
        assert session.is_finished()

    async def test_accuracy_rounds_to_whole_percent(self, clock):
        store = MemoryRecordStore([make_card("a"), make_card("b")])
        session = await started(store, clock, list(store.cards.values()))
        await session.rate(CardRating.AGAIN)
        await session.rate(CardRating.GOOD)
        await session.rate(CardRating.GOOD)
        assert session.summary().accuracy == 67

    async def test_deleted_card_is_dropped_without_counting(self, store, clock, cards):
        session = await started(store, clock, cards)
        del store.cards["card1"]

        result = await session.rate(CardRating.GOOD)

        assert result is None
        assert session.stats.total_studied == 0
        assert queue_ids(session) == ["card2", "card3"]

    async def test_rate_before_start(self, store, clock):
        with pytest.raises(InvalidStateError):
            await StudySession(store, clock=clock).rate(CardRating.GOOD)

    async def test_summary_before_finish(self, store, clock, cards):
        session = await started(store, clock, cards)
        with pytest.raises(InvalidStateError):
            session.summary()


class TestStorageFailures:

    async def test_card_write_failure_applies_nothing(self, store, clock, cards):
        session = await started(store, clock, cards)
        before = store.snapshot.model_copy(deep=True)
        store.fail.add("put_card")

        with pytest.raises(StorageError):
            await session.rate(CardRating.GOOD)

        assert session.stats.total_studied == 0
        assert session.current_card() == cards[0]
        assert store.cards["card1"] == cards[0]
        assert store.snapshot == before

        store.fail.clear()
        await session.rate(CardRating.GOOD)
        assert session.stats.total_studied == 1
        assert session.current_card().id == "card2"

    async def test_checkpoint_failure_after_card_write(self, store, clock, cards):
        session = await started(store, clock, cards)
        store.fail.add("put_session_snapshot")

        with pytest.raises(SnapshotError):
            await session.rate(CardRating.GOOD)

        assert store.cards["card1"].repetition == 1
        assert session.stats.total_studied == 1
        assert session.current_card().id == "card2"

    @pytest.mark.parametrize("operation", ["touch_deck_last_studied", "clear_session_snapshot"])
    async def test_failed_finish_keeps_rating_and_can_be_retried(self, clock, operation):
        store = MemoryRecordStore([make_card("only")])
        session = await started(store, clock, list(store.cards.values()))
        store.fail.add(operation)

        with pytest.raises(SnapshotError, match="finishing the session"):
            await session.rate(CardRating.GOOD)
        assert store.cards["only"].repetition == 1
        assert session.stats.total_studied == 1
        assert not session.is_finished()
        with pytest.raises(InvalidStateError):
            await session.rate(CardRating.GOOD)

        store.fail.clear()
        summary = await session.finish()
        assert session.is_finished()
        assert summary.total_studied == 1
        assert store.snapshot is None

    async def test_checkpoint_failure_after_dropping_deleted_card(self, store, clock, cards):
        session = await started(store, clock, cards)
        del store.cards["card1"]
        store.fail.add("put_session_snapshot")

        with pytest.raises(SnapshotError) as excinfo:
            await session.rate(CardRating.GOOD)

        assert "Rating saved" not in str(excinfo.value)
        assert "Deleted card dropped" in str(excinfo.value)
        assert session.stats.total_studied == 0
        assert session.current_card().id == "card2"


class TestConcurrency:

    async def test_double_tap_is_rejected(self, store, clock, cards):
        session = await started(store, clock, cards)
        store.put_card_gate = asyncio.Event()

        first = asyncio.create_task(session.rate(CardRating.GOOD))
        await asyncio.sleep(0)
        with pytest.raises(SessionBusyError):
            await session.rate(CardRating.GOOD)

        store.put_card_gate.set()
        await first
        assert session.stats.total_studied == 1
        assert store.cards["card1"].repetition == 1
        assert store.cards["card2"].repetition == 0

    async def test_exit_waits_for_in_flight_write(self, store, clock, cards):
        session = await started(store, clock, cards)
        store.put_card_gate = asyncio.Event()

        rating = asyncio.create_task(session.rate(CardRating.GOOD))
        await asyncio.sleep(0)
        leaving = asyncio.create_task(session.exit())
        await asyncio.sleep(0)
        assert not leaving.done()

        store.put_card_gate.set()
        await rating
        await leaving

        assert store.cards["card1"].repetition == 1
        assert store.snapshot is None
        assert session.status == SessionStatus.INITIALIZING


class TestResume:

    async def test_round_trip_restores_queue_and_stats(self, store, clock, cards):
        first = await started(store, clock, cards)
        clock.advance(seconds=20)
        await first.rate(CardRating.AGAIN)
        await first.rate(CardRating.GOOD)

        second = await started(store, clock, cards)

        assert second.resumed
        assert second.current_card() == first.current_card()
        assert second.remaining_count() == first.remaining_count()
        assert queue_ids(second) == queue_ids(first) == ["card3", "card1"]
        assert second.stats == first.stats
        assert second.progress() == first.progress()

    async def test_saved_order_is_used_verbatim(self, store, clock, cards):
        store.snapshot = SessionState(
            deck_id="deck-1",
            queue=[cards[2], cards[0]],
            total_session_cards=3,
            stats=SessionStats(total_studied=1, correct_count=1, cards_by_rating={"again": 0, "hard": 0, "good": 1, "easy": 0})
        )
        session = await started(store, clock, cards)
        assert queue_ids(session) == ["card3", "card1"]
        assert session.total_session_cards == 3
        assert session.progress() == pytest.approx(1 / 3)
        assert session.stats.total_studied == 1

    async def test_denominator_covers_larger_saved_queue(self, store, clock, cards):
        store.snapshot = SessionState(deck_id="deck-1", queue=cards, total_session_cards=3)
        session = await started(store, clock, cards[:1])
        assert session.total_session_cards == 3

    async def test_duration_continues_after_resume(self, store, clock, cards):
        first = await started(store, clock, cards)
        clock.advance(seconds=30)
        await first.rate(CardRating.GOOD)
        assert first.stats.session_duration == 30

        clock.advance(hours=2)
        second = await started(store, clock, cards)
        clock.advance(seconds=10)
        await second.rate(CardRating.GOOD)
        assert second.stats.session_duration == 40


class TestExitAndRestart:

    async def test_exit_clears_checkpoint_without_finishing(self, store, clock, cards):
        session = await started(store, clock, cards)
        await session.rate(CardRating.GOOD)

        await session.exit()

        assert store.snapshot is None
        assert store.last_studied == {}
        assert session.status == SessionStatus.INITIALIZING
        assert session.current_card() is None
        with pytest.raises(InvalidStateError):
            session.summary()

    async def test_explicit_finish(self, store, clock, cards):
        session = await started(store, clock, cards)
        await session.rate(CardRating.HARD)

        summary = await session.finish()

        assert session.is_finished()
        assert summary.total_studied == 1
        assert summary.cards_by_rating["hard"] == 1
        assert "deck-1" in store.last_studied
        assert store.snapshot is None

    async def test_restart_uses_original_unsorted_order(self, clock):
        cards = [
            make_card("later", due=T0 + timedelta(days=2)),
            make_card("due", due=T0 - timedelta(days=1)),
        ]
        store = MemoryRecordStore(cards)
        session = await started(store, clock, cards)
        await session.rate(CardRating.GOOD)
        await session.rate(CardRating.GOOD)
        assert session.is_finished()

        await session.restart()

        assert session.status == SessionStatus.ACTIVE
        assert queue_ids(session) == ["later", "due"]
        assert session.stats == SessionStats()
        assert session.total_session_cards == 2
        assert session.progress() == 0.0
        assert store.snapshot is not None

    async def test_restart_requires_a_started_session(self, store, clock):
        with pytest.raises(InvalidStateError):
            await StudySession(store, clock=clock).restart()
