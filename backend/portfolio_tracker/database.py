# backend/portfolio_tracker/database.py
"""
Database engine and session management.

The tracker keeps its state in an embedded SQLite file by default; any
SQLAlchemy URL works (DATABASE_URL).

- SQLite uses StaticPool for in-memory databases (one shared connection) and
  check_same_thread=False, because refreshes run on worker threads.
- Other databases get the default QueuePool with pre-ping.
"""

import logging

from sqlalchemy import create_engine, text, Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from .config import settings

logger = logging.getLogger(__name__)


def create_db_engine(database_url: str | None = None, echo: bool | None = None) -> Engine:
    """
    Create a SQLAlchemy engine for the given URL (defaults to settings).

    Returns:
        Engine: Configured SQLAlchemy engine
    """
    url = database_url or settings.database_url
    echo = settings.debug if echo is None else echo

    if url.lower().startswith("sqlite://"):
        logger.info(f"Configuring SQLite database: {url}")
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.rstrip("/") == "sqlite:":
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, **kwargs)

    logger.info("Configuring database with connection pooling")
    return create_engine(url, pool_pre_ping=True, echo=echo)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory bound to `engine`, used by SqlAlchemyStorage."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def check_database_health(engine: Engine) -> dict:
    """
    Check database connectivity.

    Returns:
        dict: {"status": "healthy"} or {"status": "unhealthy", "error": ...}
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return {"status": "healthy", "database": engine.dialect.name}
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {"status": "unhealthy", "error": str(e)}
