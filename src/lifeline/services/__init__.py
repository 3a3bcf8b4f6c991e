"""Service layer for the event store.

- events: insert / query / count / clear
"""

from lifeline.services import events

__all__ = ["events"]
