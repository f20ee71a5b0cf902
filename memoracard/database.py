from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from memoracard.config import settings


def build_engine(database_url: str, echo: bool = False, **kwargs):
    """Create an engine; SQLite connections may be reused across worker threads"""
    if database_url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        kwargs["connect_args"] = connect_args
    return create_engine(database_url, echo=echo, **kwargs)


engine = build_engine(settings.database_url, echo=settings.sql_echo)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
Base = declarative_base()


def init_db(bind=None):
    """Create all tables that don't exist yet"""
    # Register models on Base.metadata before creating tables
    import memoracard.models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)


def drop_db(bind=None):
    """Drop every table (all decks, cards and session snapshots)"""
    import memoracard.models  # noqa: F401
    Base.metadata.drop_all(bind=bind or engine)
