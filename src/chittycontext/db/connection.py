"""
Database connection management for the SQL store backend.

Provides engine construction, session factories and transaction scoping.
Nothing here is created at import time: callers build an engine from an
explicit database URL and pass the session factory to the store.
"""

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from chittycontext.models.db import Base

logger = logging.getLogger(__name__)


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for ``database_url``.

    SQLite engines allow cross-thread use because store calls run in a
    thread pool; in-memory SQLite shares one connection so every thread sees
    the same database.
    """
    if database_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=echo, **kwargs)

    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,  # Verify connections before using
        pool_recycle=1800,  # Recycle connections to prevent stale
    )


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session],
) -> Generator[Session, None, None]:
    """
    Context manager for a session wrapped in one transaction.

    Commits on success, rolls back on any exception and always closes.

    Example:
        >>> with session_scope(SessionLocal) as db:
        >>>     db.get(KeyValueEntry, "context:123")
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine) -> None:
    """Create the store tables if they do not exist."""
    Base.metadata.create_all(bind=engine)


def check_connection(engine: Engine) -> bool:
    """
    Check if database connection is working.

    Returns:
        bool: True if connection successful, False otherwise
    """
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
