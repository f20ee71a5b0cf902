from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship
from memoracard.database import Base
from memoracard.utils import utcnow
import uuid

class Deck(Base):
    """A named collection of flashcards"""
    __tablename__ = "decks"
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_studied_at = Column(DateTime(timezone=True))
    card_count = Column(Integer, nullable=False, default=0)  # denormalized for list views
    
    cards = relationship("Card", back_populates="deck", cascade="all, delete-orphan")
