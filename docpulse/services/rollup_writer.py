"""
docpulse.services.rollup_writer — Atomic Rollup Upserts
========================================================

Applies :class:`~docpulse.engine.rollups.RollupDelta` objects to the rollup
tables with one ``INSERT … ON CONFLICT (key) DO UPDATE`` per row, so two
writers hitting the same key never lose an increment and never create a
second row.  The database resolves the race; no Python-side lock is taken.

The conflict clause is built with the dialect's own ``insert`` construct
(PostgreSQL in production, SQLite in tests).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import Engine, case, or_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from docpulse.database.engine import get_session
from docpulse.database.models import FAMILY_MODELS, Base
from docpulse.engine.events import AnalyticsEvent
from docpulse.engine.rollups import RollupDelta, compute_deltas

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _dialect_insert(session: Session, model: type[Base]):
    dialect = session.get_bind().dialect.name
    insert = _DIALECT_INSERTS.get(dialect)
    if insert is None:
        raise RuntimeError(f"No atomic upsert support for database dialect {dialect!r}")
    return insert(model)


def upsert_increment(
    session: Session,
    model: type[Base],
    key: dict[str, Any],
    *,
    increments: dict[str, int | float] | None = None,
    maxima: dict[str, datetime] | None = None,
    minima: dict[str, datetime] | None = None,
    least_values: dict[str, Any] | None = None,
) -> None:
    """Create the row for *key* or merge into the existing one.

    - ``increments``: ``col = col + delta``
    - ``maxima`` / ``minima``: keep the larger / smaller timestamp; a NULL
      stored value is always replaced
    - ``least_values``: keep the smallest non-empty value; a NULL or empty
      stored value is always replaced
    """
    increments = increments or {}
    maxima = maxima or {}
    minima = minima or {}
    least_values = least_values or {}

    stmt = _dialect_insert(session, model).values(
        **key, **increments, **maxima, **minima, **least_values,
    )
    table = model.__table__
    excluded = stmt.excluded

    updates: dict[str, Any] = {}
    for col in increments:
        updates[col] = table.c[col] + excluded[col]
    for col in maxima:
        updates[col] = case(
            (table.c[col].is_(None), excluded[col]),
            (excluded[col] > table.c[col], excluded[col]),
            else_=table.c[col],
        )
    for col in minima:
        updates[col] = case(
            (table.c[col].is_(None), excluded[col]),
            (excluded[col] < table.c[col], excluded[col]),
            else_=table.c[col],
        )
    for col in least_values:
        updates[col] = case(
            (or_(table.c[col].is_(None), table.c[col] == ""), excluded[col]),
            (excluded[col] < table.c[col], excluded[col]),
            else_=table.c[col],
        )

    if updates:
        stmt = stmt.on_conflict_do_update(index_elements=list(key), set_=updates)
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=list(key))
    session.execute(stmt)


class RollupMaintainer:
    """Keeps the rollup tables in step with the event stream.

    Synchronous; applying the same event twice double counts.  Deduplication
    belongs to the event store.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def apply(self, event: AnalyticsEvent) -> None:
        """Merge every rollup delta of *event* in one transaction."""
        self.apply_deltas(compute_deltas(event))

    def apply_deltas(self, deltas: Iterable[RollupDelta]) -> None:
        deltas = list(deltas)
        if not deltas:
            return
        with get_session(self.engine) as session:
            for delta in deltas:
                upsert_increment(
                    session,
                    FAMILY_MODELS[delta.family],
                    delta.key,
                    increments=delta.increments,
                    maxima=delta.maxima,
                    minima=delta.minima,
                    least_values=delta.least_values,
                )
        logger.debug("Applied %d rollup deltas", len(deltas))
