"""
Database engine, session factory and transaction helpers.

DATABASE_URL selects the store (PostgreSQL in production, SQLite locally and in tests).
"""

import logging
import os
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./team_tasks.db")

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding one session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Generator[Session, None, None]:
    """
    Run a block of writes as one unit of work.

    Commits when the block finishes, rolls back and re-raises on any exception,
    so callers never observe a partially applied multi-row change.

    Example:
        >>> with transaction(db):
        ...     db.add(team)
        ...     db.flush()
        ...     db.add(TeamMember(team_id=team.id, user_id=user.id, role=TeamRole.OWNER))
    """
    try:
        yield db
        db.commit()
    except Exception:
        logger.info("Rolling back transaction")
        db.rollback()
        raise
