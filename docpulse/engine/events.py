"""
docpulse.engine.events — AnalyticsEvent and Typed Payloads
===========================================================

The universal event envelope.  Every product-usage signal (PRD created,
viewed, template used, …) is normalized into an :class:`AnalyticsEvent`
before it reaches the event store and the rollup maintainer.

Payloads are open string-keyed maps on the wire.  Kinds whose payload the
rollups depend on are parsed into frozen dataclasses by
:func:`parse_payload`; every other kind keeps its raw map.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from docpulse.constants import DEFAULT_TEMPLATE_TYPE
from docpulse.engine.periods import ensure_utc, utc_now
from docpulse.errors import MalformedEventError

__all__ = [
    "AnalyticsEvent",
    "EventCategory",
    "EventKind",
    "KnownPayload",
    "SessionEndedPayload",
    "TemplateUsedPayload",
    "new_event_id",
    "parse_payload",
]


# ---------------------------------------------------------------------------
# Event kind / category constants
# ---------------------------------------------------------------------------
class EventKind:
    """Event kind string constants."""
    PRD_CREATED = "prd_created"
    PRD_VIEWED = "prd_viewed"
    PRD_EDITED = "prd_edited"
    COMMENT_ADDED = "comment_added"
    USER_LOGIN = "user_login"
    COLLABORATION_STARTED = "collaboration_started"
    AI_GENERATION_USED = "ai_generation_used"
    TEMPLATE_USED = "template_used"
    SESSION_ENDED = "session_ended"
    PRD_LIKED = "prd_liked"
    PRD_SHARED = "prd_shared"
    PRD_CLONED = "prd_cloned"


class EventCategory:
    """Event category string constants."""
    PRD = "prd"
    TEAM = "team"
    USER = "user"
    COLLABORATION = "collaboration"
    GALLERY = "gallery"


def new_event_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# AnalyticsEvent — the universal event envelope
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AnalyticsEvent:
    """Immutable product-usage event.

    ``occurred_at`` is normalized to UTC on construction.  ``id`` may be left
    empty; the event store assigns one on append.
    """

    kind: str
    category: str = EventCategory.PRD
    occurred_at: datetime = field(default_factory=utc_now)
    actor_user_id: str | None = None
    team_id: str | None = None
    document_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    session_id: str | None = None
    client_meta: dict[str, Any] | None = None
    id: str | None = None

    def __post_init__(self) -> None:
        if not self.kind:
            raise MalformedEventError("Event kind is required")
        if not isinstance(self.category, str) or not self.category:
            raise MalformedEventError("Event category must be a non-empty string")
        if not isinstance(self.payload, dict):
            raise MalformedEventError(
                f"Event payload must be a mapping, got {type(self.payload).__name__}"
            )
        object.__setattr__(self, "occurred_at", ensure_utc(self.occurred_at))

    def with_id(self, event_id: str) -> AnalyticsEvent:
        return replace(self, id=event_id)


# ---------------------------------------------------------------------------
# Typed payloads
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TemplateUsedPayload:
    template_name: str
    template_type: str = DEFAULT_TEMPLATE_TYPE


@dataclass(frozen=True, slots=True)
class SessionEndedPayload:
    duration_minutes: float


KnownPayload = TemplateUsedPayload | SessionEndedPayload


def _lookup(payload: dict[str, Any], *keys: str) -> Any:
    """First present value among camelCase / snake_case spellings."""
    for key in keys:
        if payload.get(key) is not None:
            return payload[key]
    return None


def _parse_template_used(payload: dict[str, Any]) -> TemplateUsedPayload:
    name = _lookup(payload, "templateName", "template_name")
    if not isinstance(name, str) or not name.strip():
        raise MalformedEventError("template_used requires a non-empty templateName")
    template_type = _lookup(payload, "templateType", "template_type")
    if template_type is None or (isinstance(template_type, str) and not template_type.strip()):
        template_type = DEFAULT_TEMPLATE_TYPE
    elif not isinstance(template_type, str):
        raise MalformedEventError("templateType must be a string")
    return TemplateUsedPayload(template_name=name.strip(), template_type=template_type.strip())


def _parse_session_ended(payload: dict[str, Any]) -> SessionEndedPayload:
    minutes = _lookup(payload, "durationMinutes", "duration_minutes")
    if isinstance(minutes, bool) or not isinstance(minutes, int | float):
        raise MalformedEventError("session_ended requires a numeric durationMinutes")
    try:
        minutes = float(minutes)
    except OverflowError:
        raise MalformedEventError("durationMinutes is out of range") from None
    if not math.isfinite(minutes) or minutes < 0:
        raise MalformedEventError(f"durationMinutes must be finite and >= 0, got {minutes}")
    return SessionEndedPayload(duration_minutes=minutes)


_PAYLOAD_PARSERS = {
    EventKind.TEMPLATE_USED: _parse_template_used,
    EventKind.SESSION_ENDED: _parse_session_ended,
}


def parse_payload(kind: str, payload: dict[str, Any]) -> KnownPayload | dict[str, Any]:
    """Validate and type the payload of a known kind.

    Unknown kinds (and known kinds without payload requirements) return the
    raw map unchanged, so new client event kinds never break ingestion.

    Raises
    ------
    MalformedEventError
        If a known payload shape is violated.
    """
    parser = _PAYLOAD_PARSERS.get(kind)
    if parser is None:
        return payload
    return parser(payload)
