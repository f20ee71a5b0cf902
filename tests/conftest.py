import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from memoracard.database import build_engine, init_db
from memoracard.errors import StorageError
from memoracard.schemas import Flashcard, SessionState
from memoracard.store import SqlRecordStore

T0 = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic replacement for utcnow"""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class MemoryRecordStore:
    """
    In-memory RecordStore.

    Operation names added to ``fail`` raise StorageError; ``put_card_gate``
    holds put_card until the event is set, to simulate a slow write.
    """

    def __init__(self, cards=()):
        self.cards: Dict[str, Flashcard] = {c.id: c.model_copy(deep=True) for c in cards}
        self.snapshot: Optional[SessionState] = None
        self.last_studied: Dict[str, datetime] = {}
        self.fail = set()
        self.calls = []
        self.put_card_gate: Optional[asyncio.Event] = None

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail:
            raise StorageError(f"{operation} failed")

    async def get_card(self, card_id):
        self._check("get_card")
        card = self.cards.get(card_id)
        return card.model_copy(deep=True) if card else None

    async def put_card(self, card):
        if self.put_card_gate is not None:
            await self.put_card_gate.wait()
        self._check("put_card")
        self.cards[card.id] = card.model_copy(deep=True)

    async def get_cards_for_deck(self, deck_id):
        self._check("get_cards_for_deck")
        return [c.model_copy(deep=True) for c in self.cards.values() if c.deck_id == deck_id]

    async def get_session_snapshot(self, deck_id):
        self._check("get_session_snapshot")
        if self.snapshot is not None and self.snapshot.deck_id == deck_id:
            return self.snapshot.model_copy(deep=True)
        return None

    async def put_session_snapshot(self, state):
        self._check("put_session_snapshot")
        self.snapshot = state.model_copy(deep=True)

    async def clear_session_snapshot(self):
        self._check("clear_session_snapshot")
        self.snapshot = None

    async def touch_deck_last_studied(self, deck_id, timestamp):
        self._check("touch_deck_last_studied")
        self.last_studied[deck_id] = timestamp


def make_card(card_id: str, due: datetime = T0, deck_id: str = "deck-1", **fields) -> Flashcard:
    return Flashcard(
        id=card_id,
        deck_id=deck_id,
        question=f"Q {card_id}",
        answer=f"A {card_id}",
        created_at=T0 - timedelta(days=30),
        due_date=due,
        **fields
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cards():
    """Three due cards, oldest-due first"""
    return [
        make_card("card1", due=T0 - timedelta(days=3)),
        make_card("card2", due=T0 - timedelta(days=2)),
        make_card("card3", due=T0 - timedelta(days=1)),
    ]


@pytest.fixture
def store(cards):
    return MemoryRecordStore(cards)


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def sql_store(session_factory):
    return SqlRecordStore(session_factory)
