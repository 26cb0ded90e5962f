"""
Database configuration and connection handling.

Supports PostgreSQL (production) and SQLite (local/tests).
Set USE_DATABASE=false to run the API without persistence.
"""

import logging
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from config import config
from .models import Base

logger = logging.getLogger(__name__)

USE_DATABASE = config.USE_DATABASE
DATABASE_URL = config.DATABASE_URL

# Global engine instance
engine: Engine | None = None
SessionLocal = None


def init_engine(database_url: str | None = None) -> Engine | None:
    """Initialize database engine if database is enabled."""
    global engine, SessionLocal

    if not USE_DATABASE:
        logger.info("Database is disabled (USE_DATABASE=false)")
        return None

    url = database_url or DATABASE_URL
    try:
        engine_kwargs = {
            "echo": config.SQLALCHEMY_ECHO,
            "pool_pre_ping": True,
        }

        if url.startswith("sqlite"):
            # SQLite local mode: thread-safe access for FastAPI workers.
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        else:
            engine_kwargs["pool_size"] = 5
            engine_kwargs["max_overflow"] = 10
            engine_kwargs["pool_recycle"] = 3600

        new_engine = create_engine(url, **engine_kwargs)

        with new_engine.connect() as conn:
            conn.execute(text("SELECT 1"))

        engine = new_engine
        SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        logger.info(f"Database connected: {url.split('@')[-1]}")
        return engine

    except Exception as e:
        logger.error(f"Failed to connect to database: {e}")
        engine = None
        SessionLocal = None
        return None


def is_database_available() -> bool:
    """Check if database is available for use."""
    if not USE_DATABASE or engine is None:
        return False
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for FastAPI to get database session.

    Usage: db: Session = Depends(get_db)
    """
    if SessionLocal is None:
        raise RuntimeError("Database is not configured")

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables():
    """Create all tables (for initial setup)."""
    if engine is not None:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created")


# Initialize engine on module import
init_engine()
