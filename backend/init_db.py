#!/usr/bin/env python3
# backend/init_db.py
"""
Database initialization script.

Requires the package to be installed (``pip install -e .``):
    python backend/init_db.py
"""
import logging

from portfolio_tracker.database import engine
from portfolio_tracker.models import Base
from portfolio_tracker.utils import setup_logging

logger = logging.getLogger(__name__)


def init_db() -> None:
    """Create all database tables defined in models."""
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info(f"Tables created: {', '.join(sorted(Base.metadata.tables))}")


if __name__ == "__main__":
    setup_logging()
    init_db()
