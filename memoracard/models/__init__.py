from memoracard.models.deck import Deck
from memoracard.models.card import Card
from memoracard.models.session_snapshot import SessionSnapshot

__all__ = [
    "Deck",
    "Card",
    "SessionSnapshot"
]
