"""Database package: engine, session factory, init_db(), get_session()."""

import threading
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from mail_scheduler.config import DATABASE_URL
from mail_scheduler.db.base import Base

# Import all models so Base.metadata has all tables
from mail_scheduler.db.models import ScheduledEmail  # noqa: F401

_init_lock = threading.Lock()
_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


def _get_engine(url: str) -> Engine:
    """Create engine usable from executor threads (the store runs queries off the event loop)."""
    if not url.startswith("sqlite"):
        return create_engine(url, echo=False, pool_pre_ping=True)
    connect_args = {"check_same_thread": False}
    if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
        # One shared connection, otherwise every thread sees its own empty database.
        return create_engine(url, echo=False, connect_args=connect_args, poolclass=StaticPool)
    return create_engine(url, echo=False, connect_args=connect_args)


def init_db(url: str | None = None) -> None:
    """Create engine and tables on first call. Later calls are no-ops."""
    global _engine, _SessionLocal
    with _init_lock:
        if _SessionLocal is not None:
            return
        _engine = _get_engine(url or DATABASE_URL)
        Base.metadata.create_all(bind=_engine)
        _SessionLocal = sessionmaker(bind=_engine, autocommit=False, autoflush=False, expire_on_commit=False)


def dispose_db() -> None:
    """Close pooled connections and forget the engine (next get_session() re-initializes)."""
    global _engine, _SessionLocal
    with _init_lock:
        if _engine is not None:
            _engine.dispose()
        _engine = None
        _SessionLocal = None


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Context manager yielding a DB session. Calls init_db() on first use."""
    init_db()
    session = _SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
