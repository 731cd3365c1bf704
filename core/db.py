# core/db.py
"""
Database management for the MLM engine.
Single database; every engine service receives a Session from here.
"""
import logging
from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from config import Config
from models.base import Base

logger = logging.getLogger(__name__)

# Database engine
_engine = None
_SessionFactory = None


def get_engine():
    """Get or create database engine."""
    global _engine
    if _engine is None:
        database_url = Config.get(Config.DATABASE_URL, "sqlite:///mlm_engine.db")
        _engine = create_engine(
            database_url,
            echo=False,
            pool_pre_ping=True
        )
        logger.info(f"Database engine created: {database_url}")
    return _engine


def get_session_factory():
    """Get or create session factory."""
    global _SessionFactory
    if _SessionFactory is None:
        _SessionFactory = sessionmaker(bind=get_engine())
        logger.info("Session factory created")
    return _SessionFactory


def get_session() -> Session:
    """Get a new database session."""
    return get_session_factory()()


@contextmanager
def get_db_session_ctx():
    """
    Context manager for database sessions.

    Commits on clean exit, rolls back and re-raises on error.

    Usage:
        with get_db_session_ctx() as session:
            user = session.query(User).first()
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Database error: {e}")
        raise
    finally:
        session.close()


def setup_database():
    """Create all tables and activate model invariant listeners."""
    import models  # noqa: F401  (registers every mapped table on Base.metadata)
    from models.listeners import register_all_listeners

    logger.info("Setting up database...")
    Base.metadata.create_all(get_engine())
    register_all_listeners()
    logger.info("Database setup completed")


def drop_all_tables():
    """Drop all tables - USE WITH CAUTION!"""
    logger.warning("Dropping all tables...")
    Base.metadata.drop_all(get_engine())
    logger.info("All tables dropped")


def dispose_engine():
    """Close pooled connections and forget the cached engine."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _SessionFactory = None
