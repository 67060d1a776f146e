"""Database engine and session management utilities."""
from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from ledger_import.db import Base, models  # noqa: F401  # Ensure models are imported for metadata registration

from .settings import get_settings

_settings = get_settings()


def _engine_options(database_url: str) -> dict[str, Any]:
    # FastAPI runs sync endpoints in a worker thread pool.
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {}


ENGINE = create_engine(_settings.database_url, future=True, **_engine_options(_settings.database_url))
SessionLocal = sessionmaker(bind=ENGINE, class_=Session, autoflush=False, autocommit=False)


@event.listens_for(ENGINE, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    """SQLite ignores ON DELETE clauses unless foreign keys are switched on per connection."""

    if ENGINE.dialect.name != "sqlite":
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_db_session() -> Generator[Session, None, None]:
    """Yield a database session and ensure closure."""

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def create_database_schema() -> None:
    """Create database tables based on ORM metadata."""

    Base.metadata.create_all(bind=ENGINE)
