import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from memoracard.utils import EPOCH, as_utc, round_half_up

logger = logging.getLogger(__name__)

DECK_NAME_MAX_LENGTH = 100
QUESTION_MAX_LENGTH = 500
ANSWER_MAX_LENGTH = 1000

DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3

# Substituted for scheduling fields that older or damaged records lack
SCHEDULING_DEFAULTS = {
    "interval": 0,
    "ease_factor": DEFAULT_EASE_FACTOR,
    "repetition": 0,
    "due_date": EPOCH,
}


class CardRating(str, Enum):
    """Review outcome, ordered from failed to trivially easy"""
    AGAIN = "again"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"


class DeckCreate(BaseModel):
    """Schema for creating or renaming a deck"""
    name: str = Field(min_length=1, max_length=DECK_NAME_MAX_LENGTH)

    class Config:
        str_strip_whitespace = True


class CardCreate(BaseModel):
    """Schema for adding a card or editing its content"""
    question: str = Field(min_length=1, max_length=QUESTION_MAX_LENGTH)
    answer: str = Field(min_length=1, max_length=ANSWER_MAX_LENGTH)

    class Config:
        str_strip_whitespace = True


class DeckResponse(BaseModel):
    """Schema for deck list/detail views"""
    id: str
    name: str
    created_at: datetime
    last_studied_at: Optional[datetime] = None
    card_count: int = 0

    class Config:
        from_attributes = True

    @field_validator("created_at", "last_studied_at")
    @classmethod
    def _utc(cls, value):
        return as_utc(value)


class Flashcard(BaseModel):
    """
    Value snapshot of a card.

    Session queues and snapshots hold these, never live ORM rows, so a change
    only reaches other holders through a store write followed by a re-read.
    """
    id: str
    deck_id: str
    question: str = ""
    answer: str = ""
    created_at: Optional[datetime] = None
    interval: int = 0
    ease_factor: float = DEFAULT_EASE_FACTOR
    repetition: int = 0
    due_date: datetime = EPOCH
    last_reviewed: Optional[datetime] = None

    class Config:
        from_attributes = True

    @model_validator(mode="before")
    @classmethod
    def _fill_scheduling_defaults(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
        else:
            data = {name: getattr(data, name, None) for name in cls.model_fields}
        for name, default in SCHEDULING_DEFAULTS.items():
            if data.get(name) is None:
                logger.warning("Card %s has no %s; using default %r", data.get("id"), name, default)
                data[name] = default
        return data

    @field_validator("created_at", "due_date", "last_reviewed")
    @classmethod
    def _utc(cls, value):
        return as_utc(value)

    def is_due(self, now: datetime) -> bool:
        return self.due_date <= now


def _empty_rating_counts() -> Dict[str, int]:
    return {rating.value: 0 for rating in CardRating}


class SessionStats(BaseModel):
    """Running statistics for one study session"""
    total_studied: int = 0
    correct_count: int = 0
    incorrect_count: int = 0
    session_duration: int = 0  # whole seconds
    cards_by_rating: Dict[str, int] = Field(default_factory=_empty_rating_counts)

    def record(self, rating: CardRating) -> None:
        """Count one processed rating"""
        self.total_studied += 1
        if rating == CardRating.AGAIN:
            self.incorrect_count += 1
        else:
            self.correct_count += 1
        self.cards_by_rating[rating.value] = self.cards_by_rating.get(rating.value, 0) + 1

    @property
    def accuracy(self) -> int:
        """Passed ratings as a whole percentage of all ratings"""
        if self.total_studied == 0:
            return 0
        return round_half_up(self.correct_count / self.total_studied * 100)


class SessionState(BaseModel):
    """Durable snapshot of an in-progress session"""
    deck_id: str
    queue: List[Flashcard]
    total_session_cards: int
    stats: SessionStats = Field(default_factory=SessionStats)
    saved_at: Optional[datetime] = None

    @field_validator("saved_at")
    @classmethod
    def _utc(cls, value):
        return as_utc(value)


class SessionSummary(BaseModel):
    """Figures shown when a session finishes"""
    total_studied: int
    correct_count: int
    incorrect_count: int
    accuracy: int  # percent
    duration_seconds: int
    cards_by_rating: Dict[str, int]

    @classmethod
    def from_stats(cls, stats: SessionStats) -> "SessionSummary":
        return cls(
            total_studied=stats.total_studied,
            correct_count=stats.correct_count,
            incorrect_count=stats.incorrect_count,
            accuracy=stats.accuracy,
            duration_seconds=stats.session_duration,
            cards_by_rating=dict(stats.cards_by_rating)
        )
