"""
docpulse.errors — Exception Hierarchy
======================================

Every error the engine raises on purpose derives from :class:`AnalyticsError`
so the HTTP layer (and any other caller) can tell reported conditions apart
from genuine system failures.
"""

from __future__ import annotations


class AnalyticsError(Exception):
    """Base class for all docpulse errors."""


class MalformedEventError(AnalyticsError, ValueError):
    """An event failed validation at the dispatch boundary."""


class DuplicateEventError(AnalyticsError):
    """An event with the same id is already in the event store."""

    def __init__(self, event_id: str) -> None:
        super().__init__(f"Event already recorded: {event_id}")
        self.event_id = event_id


class NotFoundError(AnalyticsError):
    """A requested team or document is unknown."""


class DashboardUnavailableError(AnalyticsError):
    """Every section of a composite report failed."""

    def __init__(self, errors: dict[str, str]) -> None:
        super().__init__(f"All dashboard sections failed: {sorted(errors)}")
        self.errors = errors
