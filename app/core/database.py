"""
Database Configuration
SQLAlchemy engine and session management.
Supports both SQLite (local dev) and PostgreSQL (production).
"""

import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from app.core.config import Settings

logger = logging.getLogger(__name__)

# Base class for models
Base = declarative_base()


def create_db_engine(settings: Settings) -> Engine:
    """Create database engine with settings appropriate for the backend."""
    if settings.DATABASE_URL.startswith("sqlite"):
        return create_engine(
            settings.DATABASE_URL,
            connect_args={"check_same_thread": False},  # Needed for SQLite
        )
    return create_engine(
        settings.DATABASE_URL,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to the given engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine):
    """Initialize database tables."""
    from app.models import OutfitJob  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info(f"Database tables ready on {engine.url.render_as_string(hide_password=True)}")
