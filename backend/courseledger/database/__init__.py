"""
Database engine, session factory, and metadata shared across the application.
"""

from __future__ import annotations

import logging
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from courseledger.core.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def _engine_kwargs(url: str) -> dict[str, Any]:
    if url.startswith("sqlite"):
        # Writers wait on each other instead of failing with "database is locked"
        return {"connect_args": {"check_same_thread": False, "timeout": 30}}
    return {
        "pool_size": 5,
        "max_overflow": 5,
        "pool_timeout": 5,
        "pool_recycle": 300,
        "pool_pre_ping": True,
    }


def build_engine(url: str | None = None, *, echo: bool | None = None) -> Engine:
    """Create an engine for the given URL (defaults to ``settings.database_url``)."""
    database_url = url or settings.database_url
    engine = create_engine(
        database_url,
        echo=settings.database_echo if echo is None else echo,
        future=True,
        **_engine_kwargs(database_url),
    )
    if database_url.startswith("sqlite"):
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


engine = build_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db() -> Generator[Session, None, None]:
    """
    Yield a database session and always close it.

    Used as a FastAPI dependency; services own commit/rollback.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Create all tables (local development and tests; production uses migrations)."""
    import courseledger.models  # noqa: F401

    Base.metadata.create_all(bind or engine)
    logger.info("Database tables ensured")
