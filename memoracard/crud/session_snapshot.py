from sqlalchemy.orm import Session
from memoracard.models import SessionSnapshot
from memoracard.schemas import SessionState
from memoracard.utils import utcnow
from typing import Optional

def get_session_snapshot(db: Session, deck_id: str) -> Optional[SessionSnapshot]:
    """Get the saved session for a deck, if that deck holds the active slot"""
    return db.query(SessionSnapshot).filter(SessionSnapshot.deck_id == deck_id).first()

def put_session_snapshot(db: Session, state: SessionState) -> SessionSnapshot:
    """Save a session, replacing whatever session was saved before (one active slot)"""
    saved_at = state.saved_at or utcnow()
    db.query(SessionSnapshot).filter(SessionSnapshot.deck_id != state.deck_id).delete()
    db_snapshot = get_session_snapshot(db, state.deck_id)
    payload = state.model_copy(update={"saved_at": saved_at}).model_dump(mode="json")
    if db_snapshot:
        db_snapshot.state = payload
        db_snapshot.saved_at = saved_at
    else:
        db_snapshot = SessionSnapshot(deck_id=state.deck_id, state=payload, saved_at=saved_at)
        db.add(db_snapshot)
    db.commit()
    return db_snapshot

def clear_session_snapshot(db: Session) -> None:
    """Forget the saved session"""
    db.query(SessionSnapshot).delete()
    db.commit()
