"""Database engine setup for the event store (``<storage_dir>/events.db``)."""

from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

if TYPE_CHECKING:
    from lifeline.config import Settings

# Lazy engine initialization - engine created on first use
_events_engine: Engine | None = None
_events_session_factory: sessionmaker[Session] | None = None


def _create_engine_for_db(db_path: Path) -> Engine:
    """Create a SQLite engine with proper configuration."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(
        f"sqlite:///{db_path}",
        echo=False,
        pool_pre_ping=True,
    )


def get_events_engine(settings: "Settings | None" = None) -> Engine:
    """Get or create the event store engine."""
    global _events_engine
    if _events_engine is None:
        if settings is None:
            from lifeline.config import get_settings

            settings = get_settings()
        settings.ensure_storage_dir()
        _events_engine = _create_engine_for_db(settings.events_db_path)
    return _events_engine


def get_events_session_factory(settings: "Settings | None" = None) -> sessionmaker[Session]:
    global _events_session_factory
    if _events_session_factory is None:
        engine = get_events_engine(settings)
        _events_session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    return _events_session_factory


@contextmanager
def get_events_session(settings: "Settings | None" = None) -> Generator[Session, None, None]:
    """Yield an event store session; commits on success, rolls back on error."""
    factory = get_events_session_factory(settings)
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_database(settings: "Settings | None" = None) -> None:
    """Create the event store tables if they don't exist."""
    from lifeline.db.events import EventBase

    EventBase.metadata.create_all(get_events_engine(settings))


def reset_engines() -> None:
    """Reset engine caches (useful for testing)."""
    global _events_engine, _events_session_factory

    if _events_engine is not None:
        _events_engine.dispose()
        _events_engine = None
    _events_session_factory = None
