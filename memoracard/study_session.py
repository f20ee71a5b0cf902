"""Study session coordinator.

Drives one sitting over a deck: keeps the session queue, runs the SM-2
update on each rating, writes the reviewed card and a resumable checkpoint
through the record store, and finalizes the deck when the queue empties.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Iterable, List, Optional

from memoracard.errors import InvalidStateError, SessionBusyError, SnapshotError, StorageError
from memoracard.schemas import CardRating, Flashcard, SessionState, SessionStats, SessionSummary
from memoracard.sm2 import review_card
from memoracard.store import RecordStore
from memoracard.study_queue import SessionQueue
from memoracard.utils import utcnow

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    INITIALIZING = "initializing"
    ACTIVE = "active"
    FINISHED = "finished"


class StudySession:
    """
    One study sitting over a single deck.

    Methods that touch storage are coroutines and hold the session lock for
    their whole duration. ``rate`` refuses to run while another operation
    holds the lock (a double-tapped rating button); ``exit``, ``restart`` and
    ``finish`` wait for it, so an in-flight card write always completes or
    fails before the session is torn down.
    """

    def __init__(self, store: RecordStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock
        self._lock = asyncio.Lock()
        self._original_cards: List[Flashcard] = []
        self._reset()

    def _reset(self) -> None:
        self.status = SessionStatus.INITIALIZING
        self.deck_id: Optional[str] = None
        self.total_session_cards = 0
        self.stats = SessionStats()
        self.resumed = False
        self._queue = SessionQueue()
        self._started_at: Optional[datetime] = None

    # ---- lifecycle ----

    async def start(self, deck_id: str, cards: Iterable[Flashcard]) -> "StudySession":
        """
        Begin studying ``cards`` from ``deck_id``, resuming a saved session when one exists.

        A saved queue is used verbatim. Its progress denominator is the larger
        of the current deck size and the saved queue length, since the deck
        may have changed since the checkpoint was written.

        With no cards the session still becomes ACTIVE, with an empty queue,
        no current card and progress 1.0. It never reaches FINISHED on its
        own; callers check ``current_card()`` and ``exit()``.
        """
        if self._lock.locked():
            raise SessionBusyError("Session is busy")
        async with self._lock:
            if self.status != SessionStatus.INITIALIZING:
                raise InvalidStateError(f"Cannot start a session that is {self.status.value}")

            cards = [card.model_copy(deep=True) for card in cards]
            now = self.clock()
            saved = await self.store.get_session_snapshot(deck_id)

            if saved is not None and saved.deck_id == deck_id:
                queue = SessionQueue(saved.queue)
                total = max(len(cards), len(saved.queue))
                stats = saved.stats.model_copy(deep=True)
                started_at = now - timedelta(seconds=stats.session_duration)
                resumed = True
            else:
                queue = SessionQueue.from_cards(cards, now)
                total = len(cards)
                stats = SessionStats()
                started_at = now
                resumed = False
                if not queue.is_empty():
                    await self.store.put_session_snapshot(
                        self._build_state(deck_id, queue, total, stats, now)
                    )

            self.deck_id = deck_id
            self._original_cards = cards
            self._queue = queue
            self.total_session_cards = total
            self.stats = stats
            self._started_at = started_at
            self.resumed = resumed
            self.status = SessionStatus.ACTIVE

        logger.info(
            "%s session for deck %s: %d of %d cards remaining",
            "Resumed" if resumed else "Started", deck_id, queue.remaining_count(), total
        )
        return self

    async def rate(self, rating: CardRating) -> Optional[Flashcard]:
        """
        Apply ``rating`` to the current card.

        Returns the card as persisted, or None when the card had been deleted
        from the store in the meantime (it is dropped from the queue and no
        rating is counted).

        Raises:
            SessionBusyError: a previous call has not finished yet
            InvalidStateError: the session is not active or has no current card
            StorageError: the card write failed; nothing was applied, retry is safe
            SnapshotError: the card was saved and the rating applied, but the
                checkpoint write (or, for the last card, finishing the
                session) failed; do not retry the rating. A failed finish
                leaves the session ACTIVE with an empty queue and can be
                retried with ``finish()``.
        """
        rating = CardRating(rating)
        if self._lock.locked():
            logger.warning("Rejected %s rating: previous operation still in flight", rating.value)
            raise SessionBusyError("A previous rating is still being saved")
        async with self._lock:
            self._require_active()
            head = self._queue.peek_head()
            if head is None:
                raise InvalidStateError("There is no card to rate")

            now = self.clock()
            stored = await self.store.get_card(head.id)
            if stored is None:
                logger.warning("Card %s no longer exists; dropping it from the session", head.id)
                self._queue.drop_head()
                await self._checkpoint_or_finish(now, rated=False)
                return None

            updated = review_card(stored, rating, now)
            await self.store.put_card(updated)

            # Card is durable; only now touch in-memory state
            self.stats.record(rating)
            self.stats.session_duration = self._elapsed(now)
            self._queue.replace_head(updated)
            self._queue.advance(passed=rating != CardRating.AGAIN)
            await self._checkpoint_or_finish(now)
            return updated

    async def finish(self) -> SessionSummary:
        """End the session now (or retry a finish that failed) and return its summary"""
        async with self._lock:
            if self.status != SessionStatus.FINISHED:
                self._require_active()
                await self._finish(self.clock())
        return self.summary()

    async def exit(self) -> None:
        """Abandon the session: forget the checkpoint and go back to the pre-session state"""
        async with self._lock:
            if self.status == SessionStatus.INITIALIZING:
                return
            deck_id = self.deck_id
            await self.store.clear_session_snapshot()
            self._reset()
        logger.info("Exited session for deck %s", deck_id)

    async def restart(self) -> "StudySession":
        """Start over with the original card list, in its original order, and zeroed stats"""
        async with self._lock:
            if self.deck_id is None:
                raise InvalidStateError("Session was never started")
            now = self.clock()
            queue = SessionQueue(self._original_cards)
            total = len(self._original_cards)
            stats = SessionStats()
            if queue.is_empty():
                await self.store.clear_session_snapshot()
            else:
                await self.store.put_session_snapshot(
                    self._build_state(self.deck_id, queue, total, stats, now)
                )

            self._queue = queue
            self.total_session_cards = total
            self.stats = stats
            self._started_at = now
            self.resumed = False
            self.status = SessionStatus.ACTIVE
        logger.info("Restarted session for deck %s with %d cards", self.deck_id, total)
        return self

    # ---- queries ----

    def current_card(self) -> Optional[Flashcard]:
        if self.status != SessionStatus.ACTIVE:
            return None
        return self._queue.peek_head()

    def remaining_count(self) -> int:
        return self._queue.remaining_count()

    def progress(self) -> float:
        """Share of the session's cards cleared so far, in [0, 1]"""
        return self._queue.progress(self.total_session_cards)

    def is_finished(self) -> bool:
        return self.status == SessionStatus.FINISHED

    def summary(self) -> SessionSummary:
        if self.status != SessionStatus.FINISHED:
            raise InvalidStateError("Summary is only available once the session has finished")
        return SessionSummary.from_stats(self.stats)

    def snapshot(self) -> SessionState:
        """Current queue and statistics as a resumable checkpoint"""
        if self.deck_id is None:
            raise InvalidStateError("Session was never started")
        return self._build_state(self.deck_id, self._queue, self.total_session_cards, self.stats, self.clock())

    # ---- internals ----

    def _require_active(self) -> None:
        if self.status != SessionStatus.ACTIVE:
            raise InvalidStateError(f"Session is {self.status.value}, not active")

    def _elapsed(self, now: datetime) -> int:
        if self._started_at is None:
            return 0
        return max(0, int((now - self._started_at).total_seconds()))

    @staticmethod
    def _build_state(deck_id, queue, total, stats, now) -> SessionState:
        return SessionState(
            deck_id=deck_id,
            queue=list(queue.cards),
            total_session_cards=total,
            stats=stats.model_copy(deep=True),
            saved_at=now
        )

    async def _checkpoint_or_finish(self, now: datetime, rated: bool = True) -> None:
        """Persist progress once the head has left the queue; storage failures become SnapshotError"""
        done = "Rating saved" if rated else "Deleted card dropped from the session"
        finishing = self._queue.is_empty()
        try:
            if finishing:
                await self._finish(now)
            else:
                await self.store.put_session_snapshot(
                    self._build_state(self.deck_id, self._queue, self.total_session_cards, self.stats, now)
                )
        except StorageError as e:
            step = "finishing the session" if finishing else "session checkpoint"
            raise SnapshotError(f"{done} but {step} failed: {e}") from e

    async def _finish(self, now: datetime) -> None:
        self.stats.session_duration = self._elapsed(now)
        await self.store.touch_deck_last_studied(self.deck_id, now)
        await self.store.clear_session_snapshot()
        self.status = SessionStatus.FINISHED
        logger.info(
            "Finished session for deck %s: %d studied, %d%% accuracy",
            self.deck_id, self.stats.total_studied, self.stats.accuracy
        )


async def start_study_session(
    store: RecordStore,
    deck_id: str,
    cards: Optional[Iterable[Flashcard]] = None,
    clock: Callable[[], datetime] = utcnow
) -> StudySession:
    """Create and start a session; loads the deck's cards from the store when none are given"""
    if cards is None:
        cards = await store.get_cards_for_deck(deck_id)
    return await StudySession(store, clock=clock).start(deck_id, cards)
