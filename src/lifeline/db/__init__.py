"""Database models and engine for the event store."""

from lifeline.db.engine import get_events_engine, get_events_session, init_database, reset_engines
from lifeline.db.events import EventBase, EventRow

__all__ = [
    "EventBase",
    "EventRow",
    "get_events_engine",
    "get_events_session",
    "init_database",
    "reset_engines",
]
