# backend/portfolio_tracker/database.py
"""
Database connection and session management.

This module configures SQLAlchemy with:
- StaticPool for in-memory SQLite so the single database is shared across threads
- A per-thread connection pool with a busy timeout for file SQLite
- Foreign key enforcement on SQLite connections
- A session factory used by request handlers and background recompute jobs

Background jobs never reuse a request's session or its connection. They
open their own through ``SessionLocal`` (or an injected factory in tests),
so a rollback in a recompute job cannot undo a request's pending write.
"""

import logging
from collections.abc import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from .config import is_memory_sqlite_url, settings

logger = logging.getLogger(__name__)


def _create_engine(database_url: str | None = None) -> Engine:
    """
    Create SQLAlchemy engine with database-appropriate configuration.

    Args:
        database_url: Connection string; defaults to settings.database_url

    Returns:
        Engine: Configured SQLAlchemy engine

    Configuration varies by database type:
    - In-memory SQLite: StaticPool so every session sees the same database
    - File SQLite: default pool, one connection per checkout, and a busy
      timeout so concurrent writers wait for the lock instead of failing
    - Others: default pool with pre-ping
    """
    url = database_url or settings.database_url

    if url.lower().startswith("sqlite://"):
        if is_memory_sqlite_url(url):
            logger.info("Configuring in-memory SQLite database")
            sqlite_engine = create_engine(
                url,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
                echo=settings.debug,
            )
        else:
            logger.info(f"Configuring SQLite database: {url}")
            sqlite_engine = create_engine(
                url,
                connect_args={
                    "check_same_thread": False,
                    "timeout": settings.sqlite_busy_timeout_seconds,
                },
                echo=settings.debug,
            )
        enable_sqlite_foreign_keys(sqlite_engine)
        return sqlite_engine

    logger.info("Configuring database connection pool")
    return create_engine(
        url,
        pool_pre_ping=True,
        echo=settings.debug,
    )


def enable_sqlite_foreign_keys(target: Engine) -> None:
    """Turn on FOREIGN KEY enforcement for every new SQLite connection."""

    @event.listens_for(target, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Create engine and session factory
engine = _create_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency that provides a database session.

    Yields:
        Session: A SQLAlchemy database session that auto-closes after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_database_health() -> dict:
    """
    Check database connectivity.

    Returns:
        dict: Health status with backend name
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))

        return {
            "status": "healthy",
            "database": "sqlite" if settings.is_sqlite else engine.dialect.name,
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": str(e),
        }
