"""
docpulse.services.event_store — Append-only Event Log
======================================================

Durable log of raw usage events.  Events are immutable once written;
``event_id`` is UNIQUE so a replayed event is rejected here rather than
being double counted further down the pipeline.

All methods are synchronous; call via ``await run_db(store.query, …)`` from
coroutines.
"""

from __future__ import annotations

import logging
from collections.abc import Collection
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Engine, Select, func, select
from sqlalchemy.exc import IntegrityError

from docpulse.database.engine import get_session
from docpulse.database.models import AnalyticsEventRow
from docpulse.engine.events import AnalyticsEvent, new_event_id
from docpulse.engine.periods import ensure_utc
from docpulse.errors import DuplicateEventError

logger = logging.getLogger(__name__)

_SUBJECT_COLUMNS = {
    "user": AnalyticsEventRow.actor_user_id,
    "team": AnalyticsEventRow.team_id,
    "document": AnalyticsEventRow.document_id,
}


@dataclass(frozen=True, slots=True)
class EventFilter:
    """Selection criteria for :meth:`EventStore.query`.  All fields AND."""

    subject_type: str | None = None
    subject_id: str | None = None
    kind: str | Collection[str] | None = None
    category: str | None = None
    since: datetime | None = None
    until: datetime | None = None

    def apply(self, stmt: Select) -> Select:
        if self.subject_type is not None:
            column = _SUBJECT_COLUMNS.get(self.subject_type)
            if column is None:
                raise ValueError(
                    f"subject_type must be one of {sorted(_SUBJECT_COLUMNS)}, "
                    f"got {self.subject_type!r}"
                )
            stmt = stmt.where(column == self.subject_id)
        if isinstance(self.kind, str):
            stmt = stmt.where(AnalyticsEventRow.kind == self.kind)
        elif self.kind is not None:
            stmt = stmt.where(AnalyticsEventRow.kind.in_(list(self.kind)))
        if self.category is not None:
            stmt = stmt.where(AnalyticsEventRow.category == self.category)
        if self.since is not None:
            stmt = stmt.where(AnalyticsEventRow.occurred_at >= ensure_utc(self.since))
        if self.until is not None:
            stmt = stmt.where(AnalyticsEventRow.occurred_at <= ensure_utc(self.until))
        return stmt


def row_to_event(row: AnalyticsEventRow) -> AnalyticsEvent:
    return AnalyticsEvent(
        id=row.event_id,
        kind=row.kind,
        category=row.category,
        occurred_at=ensure_utc(row.occurred_at),
        actor_user_id=row.actor_user_id,
        team_id=row.team_id,
        document_id=row.document_id,
        payload=dict(row.payload or {}),
        session_id=row.session_id,
        client_meta=row.client_meta,
    )


class EventStore:
    """Append / query access to ``analytics_events``."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def append(self, event: AnalyticsEvent) -> str:
        """Persist *event* and return its id (assigned if absent).

        Raises
        ------
        DuplicateEventError
            If an event with the same id is already stored.
        """
        event_id = event.id or new_event_id()
        row = AnalyticsEventRow(
            event_id=event_id,
            occurred_at=event.occurred_at,
            actor_user_id=event.actor_user_id,
            team_id=event.team_id,
            document_id=event.document_id,
            kind=event.kind,
            category=event.category,
            payload=event.payload,
            session_id=event.session_id,
            client_meta=event.client_meta,
        )
        try:
            with get_session(self.engine) as session:
                session.add(row)
        except IntegrityError:
            if not self.exists(event_id):
                raise
            raise DuplicateEventError(event_id) from None

        logger.debug("Event appended: id=%s kind=%s", event_id, event.kind)
        return event_id

    def exists(self, event_id: str) -> bool:
        with get_session(self.engine) as session:
            return session.scalar(
                select(func.count()).where(AnalyticsEventRow.event_id == event_id)
            ) > 0

    def get(self, event_id: str) -> AnalyticsEvent | None:
        with get_session(self.engine) as session:
            row = session.scalar(
                select(AnalyticsEventRow).where(AnalyticsEventRow.event_id == event_id)
            )
            return row_to_event(row) if row is not None else None

    def query(self, event_filter: EventFilter | None = None) -> list[AnalyticsEvent]:
        """Return matching events ordered by ``(occurred_at, seq)``."""
        stmt = (event_filter or EventFilter()).apply(select(AnalyticsEventRow))
        stmt = stmt.order_by(AnalyticsEventRow.occurred_at, AnalyticsEventRow.seq)
        with get_session(self.engine) as session:
            return [row_to_event(row) for row in session.scalars(stmt)]

    def count(self, event_filter: EventFilter | None = None) -> int:
        stmt = (event_filter or EventFilter()).apply(
            select(func.count()).select_from(AnalyticsEventRow)
        )
        with get_session(self.engine) as session:
            return session.scalar(stmt) or 0
