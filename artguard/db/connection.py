"""Database connection and session management."""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .config import settings
from .models import Base

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def get_engine() -> Engine:
    """Create the SQLAlchemy engine on first use."""
    global _engine
    if _engine is None:
        url = settings.database_url
        if url.startswith("sqlite"):
            _engine = create_engine(
                url,
                connect_args={"check_same_thread": False},
                echo=settings.sql_echo,
            )
        else:
            _engine = create_engine(
                url,
                pool_pre_ping=True,  # Verify connections before using
                pool_size=10,  # Connection pool size
                max_overflow=20,  # Allow up to 20 additional connections
                echo=settings.sql_echo,  # Log SQL queries (debug mode)
            )
    return _engine


def SessionLocal() -> Session:
    """Open a new session bound to the configured engine."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(
            autocommit=False, autoflush=False, bind=get_engine()
        )
    return _session_factory()


def init_db() -> None:
    """Initialize database by creating all tables."""
    logger.info("Initializing database...")
    Base.metadata.create_all(bind=get_engine())
    logger.info("Database initialized successfully")


def get_db() -> Generator[Session, None, None]:
    """
    Get database session for FastAPI dependency injection.

    Usage in FastAPI:
        @router.post("/artworks")
        def upload(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Get database session for use in context manager.

    Usage:
        with get_db_context() as db:
            entry = db.query(CatalogEntry).first()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
