"""
docpulse.services.reconciliation_service — Rollup Reconciliation
=================================================================

Admin job that validates the rollup tables against the raw event log and
corrects drift if found.

How it works:
    1. Replay every stored event through the same dispatch table the
       rollup maintainer uses, accumulating the true counters in memory.
    2. Compare each family's stored rows against the replayed totals.
    3. Shift drifted counters by the observed difference, create missing rows,
       and zero orphan rows that no event supports.
    4. Log all corrections for audit.

Counter repairs are relative (``col = col + difference``), so increments
written by live ingestion while the job runs are kept.  Only counters are
reconciled.  Timestamps of existing rows are left alone;
rows created here receive the replayed timestamps.  Events that fail
payload validation are skipped, exactly as ingestion would skip them.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Engine, select, update

from docpulse.database.engine import get_session
from docpulse.database.models import FAMILY_MODELS, AnalyticsEventRow, RollupFamily
from docpulse.engine.rollups import RollupDelta, compute_deltas
from docpulse.errors import MalformedEventError
from docpulse.services.event_store import row_to_event

logger = logging.getLogger(__name__)

COUNTER_COLUMNS: dict[RollupFamily, tuple[str, ...]] = {
    RollupFamily.USER: (
        "prds_created", "prds_viewed", "prds_edited", "comments_made",
        "login_count", "time_spent_minutes",
    ),
    RollupFamily.TEAM: (
        "prds_created", "prds_edited", "comments_added", "collaboration_sessions",
    ),
    RollupFamily.DOCUMENT: (
        "view_count", "edit_count", "comment_count", "collaboration_sessions",
        "ai_generations_used", "like_count", "share_count", "clone_count",
        "engagement_score",
    ),
    RollupFamily.TEMPLATE: ("usage_count",),
}


class _ReplayedRow:
    """In-memory merge target mirroring the upsert semantics."""

    def __init__(self, key: dict[str, Any]) -> None:
        self.key = key
        self.counters: dict[str, float] = defaultdict(float)
        self.values: dict[str, Any] = {}

    def merge(self, delta: RollupDelta) -> None:
        for col, amount in delta.increments.items():
            self.counters[col] += amount
        for col, ts in delta.maxima.items():
            if self.values.get(col) is None or ts > self.values[col]:
                self.values[col] = ts
        for col, ts in delta.minima.items():
            if self.values.get(col) is None or ts < self.values[col]:
                self.values[col] = ts
        for col, value in delta.least_values.items():
            if not self.values.get(col) or value < self.values[col]:
                self.values[col] = value


def _same(stored: float, actual: float) -> bool:
    return math.isclose(stored, actual, rel_tol=0.0, abs_tol=1e-6)


def _key_columns(model) -> list[str]:
    return [col.name for col in model.__table__.primary_key.columns]


def reconcile_rollups(engine: Engine, *, dry_run: bool = False) -> dict:
    """Validate every rollup family against the event log and fix drift.

    Returns ``{"checked", "corrected", "corrections", "dry_run", "skipped",
    "timestamp"}``.  With *dry_run* nothing is written.
    """
    truth: dict[RollupFamily, dict[tuple, _ReplayedRow]] = {f: {} for f in RollupFamily}
    corrections: list[dict] = []
    skipped = 0
    checked = 0

    with get_session(engine) as session:
        # --- Ground truth: replay the event log ---
        events = session.scalars(
            select(AnalyticsEventRow).order_by(
                AnalyticsEventRow.occurred_at, AnalyticsEventRow.seq,
            )
        )
        for row in events:
            try:
                deltas = compute_deltas(row_to_event(row))
            except MalformedEventError:
                skipped += 1
                continue
            for delta in deltas:
                replayed = truth[delta.family].setdefault(delta.key_tuple, _ReplayedRow(delta.key))
                replayed.merge(delta)

        # --- Compare against stored rows, family by family ---
        for family, model in FAMILY_MODELS.items():
            key_cols = _key_columns(model)
            columns = COUNTER_COLUMNS[family]
            stored_rows = {
                tuple(getattr(r, c) for c in key_cols): r
                for r in session.scalars(select(model))
            }
            replayed_rows = truth[family]

            for key in set(stored_rows) | set(replayed_rows):
                checked += 1
                stored = stored_rows.get(key)
                replayed = replayed_rows.get(key)
                drift = {}
                for col in columns:
                    have = float(getattr(stored, col) or 0) if stored is not None else 0.0
                    want = replayed.counters.get(col, 0.0) if replayed is not None else 0.0
                    if not _same(have, want):
                        drift[col] = {"stored": have, "actual": want}
                if stored is None and replayed is None:
                    continue
                if not drift and stored is not None:
                    continue

                corrections.append({
                    "family": family.value,
                    "key": {c: str(v) for c, v in zip(key_cols, key)},
                    "missing": stored is None,
                    "drift": drift,
                })
                if dry_run:
                    continue

                if stored is None:
                    session.add(model(
                        **replayed.key,
                        **{col: _coerce(model, col, replayed.counters.get(col, 0)) for col in columns},
                        **replayed.values,
                    ))
                else:
                    table = model.__table__
                    shifts = {
                        col: table.c[col] + _coerce(model, col, d["actual"] - d["stored"])
                        for col, d in drift.items()
                    }
                    session.execute(
                        update(table)
                        .where(*(table.c[c] == v for c, v in zip(key_cols, key)))
                        .values(shifts)
                    )

    if corrections:
        logger.warning(
            "Rollup reconciliation%s: %d/%d rows drifted: %s",
            " (dry run)" if dry_run else "", len(corrections), checked, corrections,
        )
    else:
        logger.info("Rollup reconciliation: all %d rows match", checked)
    if skipped:
        logger.warning("Rollup reconciliation skipped %d malformed events", skipped)

    return {
        "checked": checked,
        "corrected": 0 if dry_run else len(corrections),
        "corrections": corrections,
        "dry_run": dry_run,
        "skipped": skipped,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def _coerce(model, col: str, value: float) -> int | float:
    python_type = model.__table__.c[col].type.python_type
    return python_type(value)
