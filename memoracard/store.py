"""
Record store used by the study session.

The session only talks to the ``RecordStore`` protocol, so tests can hand it
an in-memory fake. ``SqlRecordStore`` is the real implementation: each call
runs one short SQLAlchemy unit of work in a worker thread so the event loop
is never blocked on disk I/O.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional, Protocol, TypeVar

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from memoracard import crud
from memoracard.database import SessionLocal
from memoracard.errors import NotFoundError, StorageError
from memoracard.schemas import Flashcard, SessionState

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RecordStore(Protocol):
    """Durable storage the study session depends on"""

    async def get_card(self, card_id: str) -> Optional[Flashcard]: ...

    async def put_card(self, card: Flashcard) -> None: ...

    async def get_cards_for_deck(self, deck_id: str) -> List[Flashcard]: ...

    async def get_session_snapshot(self, deck_id: str) -> Optional[SessionState]: ...

    async def put_session_snapshot(self, state: SessionState) -> None: ...

    async def clear_session_snapshot(self) -> None: ...

    async def touch_deck_last_studied(self, deck_id: str, timestamp: datetime) -> None: ...


class SqlRecordStore:
    """RecordStore backed by the SQLAlchemy models"""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    async def _run(self, operation: str, work: Callable[[Session], T]) -> T:
        return await asyncio.to_thread(self._run_sync, operation, work)

    def _run_sync(self, operation: str, work: Callable[[Session], T]) -> T:
        db = self.session_factory()
        try:
            return work(db)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("%s failed: %s", operation, e)
            raise StorageError(f"{operation} failed: {e}") from e
        finally:
            db.close()

    async def get_card(self, card_id: str) -> Optional[Flashcard]:
        def work(db: Session) -> Optional[Flashcard]:
            db_card = crud.get_card(db, card_id)
            return Flashcard.model_validate(db_card) if db_card else None
        return await self._run("get_card", work)

    async def put_card(self, card: Flashcard) -> None:
        def work(db: Session) -> None:
            try:
                crud.save_card_schedule(db, card)
            except NotFoundError as e:
                raise StorageError(str(e)) from e
        await self._run("put_card", work)

    async def get_cards_for_deck(self, deck_id: str) -> List[Flashcard]:
        def work(db: Session) -> List[Flashcard]:
            return [Flashcard.model_validate(c) for c in crud.get_cards_for_deck(db, deck_id)]
        return await self._run("get_cards_for_deck", work)

    async def get_session_snapshot(self, deck_id: str) -> Optional[SessionState]:
        def work(db: Session) -> Optional[SessionState]:
            db_snapshot = crud.get_session_snapshot(db, deck_id)
            if not db_snapshot:
                return None
            try:
                return SessionState.model_validate(db_snapshot.state)
            except ValidationError as e:
                # Unreadable checkpoint: behave as if there was none
                logger.warning("Discarding unreadable session snapshot for deck %s: %s", deck_id, e)
                crud.clear_session_snapshot(db)
                return None
        return await self._run("get_session_snapshot", work)

    async def put_session_snapshot(self, state: SessionState) -> None:
        await self._run("put_session_snapshot", lambda db: crud.put_session_snapshot(db, state))

    async def clear_session_snapshot(self) -> None:
        await self._run("clear_session_snapshot", crud.clear_session_snapshot)

    async def touch_deck_last_studied(self, deck_id: str, timestamp: datetime) -> None:
        def work(db: Session) -> None:
            try:
                crud.touch_deck_last_studied(db, deck_id, timestamp)
            except NotFoundError:
                logger.warning("Deck %s vanished before its study time could be recorded", deck_id)
        await self._run("touch_deck_last_studied", work)
