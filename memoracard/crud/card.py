from sqlalchemy.orm import Session
from memoracard.models import Card, Deck
from memoracard.schemas import CardCreate, Flashcard
from memoracard.errors import NotFoundError
from memoracard.utils import as_utc, utcnow
from datetime import datetime
from typing import List, Optional

SCHEDULING_FIELDS = ("interval", "ease_factor", "repetition", "due_date", "last_reviewed")

def add_card(db: Session, deck_id: str, card: CardCreate, now: Optional[datetime] = None) -> Card:
    """Add a card to a deck; it is due immediately"""
    deck = db.query(Deck).filter(Deck.id == deck_id).first()
    if not deck:
        raise NotFoundError(f"Deck {deck_id} not found")
    
    now = as_utc(now or utcnow())
    db_card = Card(
        deck_id=deck_id,
        created_at=now,
        interval=0,
        ease_factor=2.5,
        repetition=0,
        due_date=now,
        last_reviewed=None,
        **card.model_dump()
    )
    db.add(db_card)
    deck.card_count = (deck.card_count or 0) + 1
    db.commit()
    db.refresh(db_card)
    return db_card

def get_card(db: Session, card_id: str) -> Optional[Card]:
    """Get card by ID"""
    return db.query(Card).filter(Card.id == card_id).first()

def get_cards_for_deck(db: Session, deck_id: str) -> List[Card]:
    """Get a deck's cards: soonest due first, then newest"""
    return db.query(Card).filter(
        Card.deck_id == deck_id
    ).order_by(Card.due_date.asc(), Card.created_at.desc()).all()

def update_card_content(db: Session, card_id: str, card: CardCreate) -> Card:
    """Edit question/answer text; scheduling state is left alone"""
    db_card = get_card(db, card_id)
    if not db_card:
        raise NotFoundError(f"Card {card_id} not found")
    db_card.question = card.question
    db_card.answer = card.answer
    db.commit()
    db.refresh(db_card)
    return db_card

def save_card_schedule(db: Session, card: Flashcard) -> Card:
    """Overwrite a card's scheduling fields from a reviewed snapshot"""
    db_card = get_card(db, card.id)
    if not db_card:
        raise NotFoundError(f"Card {card.id} not found")
    for field in SCHEDULING_FIELDS:
        setattr(db_card, field, getattr(card, field))
    db.commit()
    db.refresh(db_card)
    return db_card

def delete_card(db: Session, card_id: str) -> None:
    """Delete a card and keep its deck's card count in step"""
    db_card = get_card(db, card_id)
    if not db_card:
        raise NotFoundError(f"Card {card_id} not found")
    deck = db_card.deck
    db.delete(db_card)
    if deck is not None:
        deck.card_count = max(0, (deck.card_count or 0) - 1)
    db.commit()
