from sqlalchemy.orm import Session
from memoracard.models import Deck, SessionSnapshot
from memoracard.schemas import DeckCreate
from memoracard.errors import NotFoundError
from memoracard.utils import as_utc
from datetime import datetime
from typing import List, Optional

def create_deck(db: Session, deck: DeckCreate) -> Deck:
    """Create a new, empty deck"""
    db_deck = Deck(**deck.model_dump())
    db.add(db_deck)
    db.commit()
    db.refresh(db_deck)
    return db_deck

def get_deck(db: Session, deck_id: str) -> Optional[Deck]:
    """Get deck by ID"""
    return db.query(Deck).filter(Deck.id == deck_id).first()

def find_deck(db: Session, id_or_name: str) -> Optional[Deck]:
    """Get deck by ID, falling back to an exact name match"""
    return get_deck(db, id_or_name) or db.query(Deck).filter(Deck.name == id_or_name).first()

def list_decks(db: Session) -> List[Deck]:
    """Get all decks, newest first"""
    return db.query(Deck).order_by(Deck.created_at.desc()).all()

def rename_deck(db: Session, deck_id: str, deck: DeckCreate) -> Deck:
    """Change a deck's name"""
    db_deck = get_deck(db, deck_id)
    if not db_deck:
        raise NotFoundError(f"Deck {deck_id} not found")
    db_deck.name = deck.name
    db.commit()
    db.refresh(db_deck)
    return db_deck

def delete_deck(db: Session, deck_id: str) -> None:
    """Delete a deck together with all of its cards and any saved session for it"""
    db_deck = get_deck(db, deck_id)
    if not db_deck:
        raise NotFoundError(f"Deck {deck_id} not found")
    db.query(SessionSnapshot).filter(SessionSnapshot.deck_id == deck_id).delete()
    db.delete(db_deck)
    db.commit()

def touch_deck_last_studied(db: Session, deck_id: str, studied_at: datetime) -> None:
    """Record when the deck last finished a study session"""
    db_deck = get_deck(db, deck_id)
    if not db_deck:
        raise NotFoundError(f"Deck {deck_id} not found")
    db_deck.last_studied_at = as_utc(studied_at)
    db.commit()
