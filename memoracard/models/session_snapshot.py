from sqlalchemy import Column, String, DateTime, JSON
from memoracard.database import Base
from memoracard.utils import utcnow

class SessionSnapshot(Base):
    """Serialized in-progress study session, kept so it can be resumed"""
    __tablename__ = "session_snapshots"
    
    deck_id = Column(String(36), primary_key=True)
    state = Column(JSON, nullable=False)  # SessionState.model_dump(mode="json")
    saved_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
