from sqlalchemy import Column, Integer, String, Float, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from memoracard.database import Base
from memoracard.utils import utcnow
import uuid

class Card(Base):
    """A question/answer card with its SM-2 scheduling state"""
    __tablename__ = "cards"
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    deck_id = Column(String(36), ForeignKey("decks.id", ondelete="CASCADE"), nullable=False, index=True)
    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    
    # SM-2 algorithm fields
    interval = Column(Integer, default=0)  # days until next review
    ease_factor = Column(Float, default=2.5)  # EF: never below 1.3
    repetition = Column(Integer, default=0)  # consecutive passing reviews
    
    due_date = Column(DateTime(timezone=True), default=utcnow)
    last_reviewed = Column(DateTime(timezone=True))
    
    deck = relationship("Deck", back_populates="cards")
