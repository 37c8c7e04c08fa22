"""
Database utilities and connection management.

WHAT: SQLite database setup with WAL mode
WHY: Dialogue snapshots, listings and network logs outlive a single request
HOW: SQLAlchemy sync engine v2 with WAL mode, session management
"""

from sqlalchemy import create_engine, text, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base
from contextlib import contextmanager
from pathlib import Path

from .config import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

_SQLITE_PREFIX = "sqlite:///"

# Ensure data directory exists for file-backed SQLite
if settings.DATABASE_URL.startswith(_SQLITE_PREFIX) and ":memory:" not in settings.DATABASE_URL:
    Path(settings.DATABASE_URL[len(_SQLITE_PREFIX):]).parent.mkdir(parents=True, exist_ok=True)

engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False},  # Broadcast callbacks write from worker threads
    echo=settings.DEBUG,
)


@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable WAL mode for better concurrency."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


SessionLocal = sessionmaker(
    bind=engine,
    expire_on_commit=False,
    autoflush=False,
    autocommit=False
)

Base = declarative_base()


@contextmanager
def get_db():
    """
    Context manager for database session.

    Usage:
        with get_db() as db:
            db.add(record)

    Commits on clean exit, rolls back and re-raises otherwise.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def ping_database() -> dict:
    """
    Check database connectivity.

    Returns:
        Dict with status and info
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()

        return {
            "available": True,
            "url": settings.DATABASE_URL,
            "error": None
        }
    except SQLAlchemyError as e:
        logger.error(f"Database ping failed: {e}")
        return {
            "available": False,
            "url": settings.DATABASE_URL,
            "error": str(e)
        }


def init_db():
    """Create tables (idempotent) and enable WAL mode."""
    # Register ORM tables on Base.metadata
    from . import models  # noqa: F401

    with engine.connect() as conn:
        conn.execute(text("PRAGMA journal_mode=WAL"))
        conn.commit()

    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized with WAL mode")


def close_db():
    """Close database connections."""
    engine.dispose()
    logger.info("Database connections closed")
