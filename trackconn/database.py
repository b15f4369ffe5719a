"""SQLAlchemy engine and per-request sessions for the TrackConnections API.

Contacts, log entries, tags, media and message templates all live in the
database named by ``DATABASE_URL``. SQLite is the default for local use;
any SQLAlchemy URL works in production.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .core import get_settings


settings = get_settings()


def _connect_args(url: str) -> dict:
    # SQLite connections are handed across threads by FastAPI's threadpool
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    settings.DATABASE_URL,
    connect_args=_connect_args(settings.DATABASE_URL),
)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
)

#: Declarative base shared by every model in :mod:`trackconn.models`.
Base = declarative_base()


def get_db():
    """
    Yield the session that serves one API request.

    The router and the core components it calls (identity resolution,
    enrichment, virtual contact aggregation) share this session.
    Identity resolution may roll it back after a failed contact lookup
    and keep using it to store the log entry, so callers must not hold
    on to unflushed state across that call.
    """

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
