"""
Database Session
Provides database session factory for use in Celery tasks and other contexts.
"""

from typing import Union

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import sessionmaker

from catalog_import.config.settings import ImportSettings, get_settings


def build_engine(settings: ImportSettings = None) -> Engine:
    """
    Create an engine from settings.

    SQLite URLs skip the pool sizing arguments, which its pool class does not accept.
    """
    settings = settings or get_settings()
    url = settings.database_url

    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})

    return create_engine(
        url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,  # Verify connections before using
    )


def create_session_factory(bind: Union[Engine, Connection]) -> sessionmaker:
    """Session factory bound to an engine or a single connection."""
    return sessionmaker(bind=bind, autocommit=False, autoflush=False, expire_on_commit=False)


_engine = None


def get_engine() -> Engine:
    """Process-wide engine, created on first use."""
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine


def SessionLocal():
    """Open a session on the process-wide engine."""
    return create_session_factory(get_engine())()
