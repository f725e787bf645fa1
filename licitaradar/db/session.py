"""Database session management with connection pooling."""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from licitaradar.settings import Settings, settings as default_settings

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def create_db_engine(settings: Optional[Settings] = None) -> Engine:
    """Create an engine for ``settings.database_url``.

    PostgreSQL gets a pre-pinged, recycled connection pool; other URLs
    (SQLite in tests) use the dialect defaults.
    """
    settings = settings or default_settings
    if settings.database_url.startswith("postgresql"):
        return create_engine(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_pool_max_overflow,
            pool_pre_ping=True,  # Verify connections before use
            pool_recycle=3600,  # Recycle connections after 1 hour
            echo=False,
        )
    return create_engine(settings.database_url, echo=False)


def create_session_factory(settings: Optional[Settings] = None) -> sessionmaker:
    """Build a session factory bound to a fresh engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=create_db_engine(settings))


def get_session_factory() -> sessionmaker:
    """Process-wide session factory (created on first use)."""
    global _engine, _session_factory
    if _session_factory is None:
        _engine = create_db_engine()
        _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
    return _session_factory


@contextmanager
def get_session(factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """Context manager for database sessions with automatic commit/rollback.

    Usage:
        with get_session() as session:
            session.add(obj)
            # Commits automatically on exit, rollbacks on exception

    Yields:
        Database session
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
