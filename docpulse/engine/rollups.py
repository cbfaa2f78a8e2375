"""
docpulse.engine.rollups — Event → Rollup Delta Dispatch
========================================================

Pure translation of one :class:`AnalyticsEvent` into the set of rollup row
deltas it implies.  No DB I/O happens here; the writer in
:mod:`docpulse.services.rollup_writer` turns each :class:`RollupDelta` into
one atomic ``INSERT … ON CONFLICT DO UPDATE`` statement, and the
reconciliation job replays the same deltas in memory.

Every delta is commutative: counters only ever add, timestamps only ever
take a min or a max, and the document owner team keeps the least value.
Applying a set of events in any order therefore yields the same rollups.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from docpulse.constants import NO_TEAM
from docpulse.database.models import RollupFamily
from docpulse.engine import scoring
from docpulse.engine.events import (
    AnalyticsEvent,
    EventKind,
    SessionEndedPayload,
    TemplateUsedPayload,
    parse_payload,
)
from docpulse.engine.periods import day_bucket


# ---------------------------------------------------------------------------
# Dispatch tables
# ---------------------------------------------------------------------------
# kind -> family -> counters incremented by one
COUNTER_DISPATCH: dict[str, dict[RollupFamily, tuple[str, ...]]] = {
    EventKind.PRD_CREATED: {
        RollupFamily.USER: ("prds_created",),
        RollupFamily.TEAM: ("prds_created",),
    },
    EventKind.PRD_VIEWED: {
        RollupFamily.USER: ("prds_viewed",),
        RollupFamily.DOCUMENT: ("view_count",),
    },
    EventKind.PRD_EDITED: {
        RollupFamily.USER: ("prds_edited",),
        RollupFamily.TEAM: ("prds_edited",),
        RollupFamily.DOCUMENT: ("edit_count",),
    },
    EventKind.COMMENT_ADDED: {
        RollupFamily.USER: ("comments_made",),
        RollupFamily.TEAM: ("comments_added",),
        RollupFamily.DOCUMENT: ("comment_count",),
    },
    EventKind.USER_LOGIN: {
        RollupFamily.USER: ("login_count",),
    },
    EventKind.COLLABORATION_STARTED: {
        RollupFamily.TEAM: ("collaboration_sessions",),
        RollupFamily.DOCUMENT: ("collaboration_sessions",),
    },
    EventKind.AI_GENERATION_USED: {
        RollupFamily.DOCUMENT: ("ai_generations_used",),
    },
    EventKind.TEMPLATE_USED: {
        RollupFamily.TEMPLATE: ("usage_count",),
    },
    EventKind.PRD_LIKED: {
        RollupFamily.DOCUMENT: ("like_count",),
    },
    EventKind.PRD_SHARED: {
        RollupFamily.DOCUMENT: ("share_count",),
    },
    EventKind.PRD_CLONED: {
        RollupFamily.DOCUMENT: ("clone_count",),
    },
}

# Engagement score is kept in step with the counters it is derived from
ENGAGEMENT_INCREMENTS: dict[str, int] = {
    EventKind.PRD_VIEWED: scoring.VIEW_WEIGHT,
    EventKind.PRD_LIKED: scoring.LIKE_WEIGHT,
    EventKind.PRD_SHARED: scoring.SHARE_WEIGHT,
    EventKind.PRD_CLONED: scoring.CLONE_WEIGHT,
}

# kind -> (document timestamp column, "min" | "max")
DOCUMENT_TIMESTAMPS: dict[str, tuple[str, str]] = {
    EventKind.PRD_CREATED: ("document_created_at", "min"),
    EventKind.PRD_VIEWED: ("first_viewed_at", "min"),
    EventKind.PRD_EDITED: ("last_edited_at", "max"),
}


# ---------------------------------------------------------------------------
# RollupDelta
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RollupDelta:
    """The change one event makes to one rollup row.

    ``key`` holds the full primary key of the row.  ``least_values`` merge
    by keeping the smallest non-empty value, so a document seen under two
    teams settles on the same owner whatever the arrival order.
    """

    family: RollupFamily
    key: dict[str, Any]
    increments: dict[str, int | float] = field(default_factory=dict)
    maxima: dict[str, datetime] = field(default_factory=dict)
    minima: dict[str, datetime] = field(default_factory=dict)
    least_values: dict[str, str] = field(default_factory=dict)

    @property
    def key_tuple(self) -> tuple:
        return tuple(self.key.values())


def compute_deltas(event: AnalyticsEvent) -> list[RollupDelta]:
    """Return every rollup delta *event* implies, in family order.

    Raises
    ------
    MalformedEventError
        If the payload of a known kind is invalid.
    """
    payload = parse_payload(event.kind, event.payload)
    day = day_bucket(event.occurred_at)
    team_key = event.team_id or NO_TEAM
    counters = COUNTER_DISPATCH.get(event.kind, {})
    deltas: list[RollupDelta] = []

    # --- User: any event with an actor marks the user active ---
    if event.actor_user_id:
        increments: dict[str, int | float] = {
            col: 1 for col in counters.get(RollupFamily.USER, ())
        }
        if isinstance(payload, SessionEndedPayload) and payload.duration_minutes > 0:
            increments["time_spent_minutes"] = payload.duration_minutes
        deltas.append(RollupDelta(
            family=RollupFamily.USER,
            key={"user_id": event.actor_user_id, "team_id": team_key, "date": day},
            increments=increments,
            maxima={"last_active_at": event.occurred_at},
        ))

    # --- Team ---
    team_counters = counters.get(RollupFamily.TEAM, ())
    if event.team_id and team_counters:
        deltas.append(RollupDelta(
            family=RollupFamily.TEAM,
            key={"team_id": event.team_id, "date": day},
            increments={col: 1 for col in team_counters},
        ))

    # --- Document ---
    doc_counters = counters.get(RollupFamily.DOCUMENT, ())
    timestamp = DOCUMENT_TIMESTAMPS.get(event.kind)
    if event.document_id and (doc_counters or timestamp):
        increments = {col: 1 for col in doc_counters}
        if event.kind in ENGAGEMENT_INCREMENTS:
            increments["engagement_score"] = ENGAGEMENT_INCREMENTS[event.kind]
        maxima: dict[str, datetime] = {}
        minima: dict[str, datetime] = {}
        if timestamp is not None:
            column, mode = timestamp
            (maxima if mode == "max" else minima)[column] = event.occurred_at
        deltas.append(RollupDelta(
            family=RollupFamily.DOCUMENT,
            key={"document_id": event.document_id},
            increments=increments,
            maxima=maxima,
            minima=minima,
            least_values={"team_id": event.team_id} if event.team_id else {},
        ))

    # --- Template ---
    if isinstance(payload, TemplateUsedPayload):
        deltas.append(RollupDelta(
            family=RollupFamily.TEMPLATE,
            key={
                "template_name": payload.template_name,
                "template_type": payload.template_type,
                "team_id": team_key,
                "date": day,
            },
            increments={col: 1 for col in counters.get(RollupFamily.TEMPLATE, ())},
        ))

    return deltas
