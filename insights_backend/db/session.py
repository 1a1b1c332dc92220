"""
Database Session Management
===========================

One engine per DATABASE_URL, built on first use and rebuilt whenever the URL
changes (each test points DATABASE_URL at its own SQLite file).

- SQLite (default `sqlite:///./dev.db`): foreign keys are switched on for
  every connection so ON DELETE CASCADE / SET NULL match PostgreSQL.
- PostgreSQL: pooled connections with pre-ping and a short connect timeout.
"""

import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from .models import Base

DEFAULT_DATABASE_URL = "sqlite:///./dev.db"

_engine: Optional[Engine] = None
_engine_url: Optional[str] = None

# Bound in get_engine(); rows stay readable after commit for serialization
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False)


def database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def _sql_echo() -> bool:
    return os.environ.get("SQL_ECHO", "false").lower() == "true"


def _sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False}, echo=_sql_echo())
        event.listen(engine, "connect", _sqlite_pragmas)
        return engine

    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=int(os.environ.get("DB_POOL_SIZE", "5")),
        max_overflow=10,
        pool_pre_ping=True,
        connect_args={"connect_timeout": int(os.environ.get("DB_CONNECT_TIMEOUT", "5"))},
        echo=_sql_echo(),
    )


def get_engine() -> Engine:
    global _engine, _engine_url
    url = database_url()
    if _engine is not None and _engine_url == url:
        return _engine

    if _engine is not None:
        _engine.dispose()
    _engine = _build_engine(url)
    _engine_url = url
    SessionLocal.configure(bind=_engine)
    return _engine


def reset_engine() -> None:
    """Forget the current engine; the next get_engine() builds a new one"""
    global _engine, _engine_url
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _engine_url = None
    SessionLocal.configure(bind=None)


def init_db() -> None:
    """Create any missing tables"""
    Base.metadata.create_all(bind=get_engine())


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency: one session per request, closed afterwards"""
    get_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Session for scripts and websocket handlers. Commits on success, rolls
    back on error.

        with get_db_session() as db:
            require_case(db, case_id, user_id)
    """
    get_engine()
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
