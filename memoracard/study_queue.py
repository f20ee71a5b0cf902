from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from memoracard.schemas import Flashcard


def due_priority_order(cards: Iterable[Flashcard], now: datetime) -> List[Flashcard]:
    """
    Order cards for a fresh session.

    Due cards (due_date <= now) come first, then the rest; each group is
    ascending by due_date. Python's sort is stable, so ties keep their input
    order and the result is deterministic for a fixed input and ``now``.
    """
    return sorted(cards, key=lambda card: (not card.is_due(now), card.due_date))


class SessionQueue:
    """Ordered working set of card snapshots for one sitting; the head is the current card"""

    def __init__(self, cards: Iterable[Flashcard] = ()):
        self._cards = [card.model_copy(deep=True) for card in cards]

    @classmethod
    def from_cards(cls, cards: Iterable[Flashcard], now: datetime) -> "SessionQueue":
        """Build a queue in due-priority order"""
        return cls(due_priority_order(cards, now))

    @property
    def cards(self) -> Tuple[Flashcard, ...]:
        """Copies of the remaining cards, head first"""
        return tuple(card.model_copy(deep=True) for card in self._cards)

    def peek_head(self) -> Optional[Flashcard]:
        if not self._cards:
            return None
        return self._cards[0].model_copy(deep=True)

    def replace_head(self, card: Flashcard) -> None:
        """Swap in a fresher snapshot of the head card (same id)"""
        if not self._cards:
            raise IndexError("replace_head on an empty queue")
        if card.id != self._cards[0].id:
            raise ValueError(f"card {card.id} is not at the head of the queue")
        self._cards[0] = card.model_copy(deep=True)

    def advance(self, passed: bool) -> None:
        """Drop the head if it passed, otherwise move it to the tail"""
        if not self._cards:
            raise IndexError("advance on an empty queue")
        head = self._cards.pop(0)
        if not passed:
            self._cards.append(head)

    def drop_head(self) -> None:
        self.advance(passed=True)

    def remaining_count(self) -> int:
        return len(self._cards)

    def is_empty(self) -> bool:
        return not self._cards

    def progress(self, total: int) -> float:
        """Fraction of ``total`` cards cleared so far, in [0, 1]"""
        if total <= 0:
            return 1.0
        done = (total - self.remaining_count()) / total
        return min(1.0, max(0.0, done))

    def __len__(self) -> int:
        return len(self._cards)
