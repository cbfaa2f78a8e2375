"""
docpulse.database.models — SQLAlchemy 2.0 Data Models
======================================================

Tables:
- analytics_events       — Append-only raw usage events (unique event_id)
- user_activity_rollups  — Per (user, team, day) activity counters
- team_activity_rollups  — Per (team, day) activity counters
- document_analytics     — One row per document, lifetime counters
- template_usage_rollups — Per (template, type, team, day) usage counters

Rollup tables use their full key as the primary key so the database can
resolve ``INSERT … ON CONFLICT (key) DO UPDATE`` atomically.  An absent team
is stored as ``''`` (see :data:`docpulse.constants.NO_TEAM`).
"""

from __future__ import annotations

import datetime as dt
import enum

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all docpulse ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class RollupFamily(enum.StrEnum):
    """The four rollup subject families."""
    USER = "user"
    TEAM = "team"
    DOCUMENT = "document"
    TEMPLATE = "template"


# ---------------------------------------------------------------------------
# AnalyticsEventRow — the raw event log
# ---------------------------------------------------------------------------
class AnalyticsEventRow(Base):
    """Append-only table of raw product-usage events.

    Events are immutable once written.  ``seq`` is assigned by the database
    and is strictly increasing, so ``(occurred_at, seq)`` is a total order.
    """
    __tablename__ = "analytics_events"

    seq: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    occurred_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    actor_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    team_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    document_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    kind: Mapped[str] = mapped_column(String(64), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    session_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    client_meta: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    recorded_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )

    __table_args__ = (
        Index("ix_analytics_events_kind_ts", "kind", "occurred_at"),
        Index("ix_analytics_events_category_ts", "category", "occurred_at"),
        Index("ix_analytics_events_actor_ts", "actor_user_id", "occurred_at"),
        Index("ix_analytics_events_team_ts", "team_id", "occurred_at"),
        Index("ix_analytics_events_document_ts", "document_id", "occurred_at"),
        Index("ix_analytics_events_ts", "occurred_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<AnalyticsEventRow seq={self.seq} id={self.event_id!r} "
            f"kind={self.kind!r} ts={self.occurred_at}>"
        )


# ---------------------------------------------------------------------------
# UserActivityRollup
# ---------------------------------------------------------------------------
class UserActivityRollup(Base):
    """Daily activity counters for one user within one team."""
    __tablename__ = "user_activity_rollups"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    team_id: Mapped[str] = mapped_column(String(64), primary_key=True, default="")
    date: Mapped[dt.date] = mapped_column(Date, primary_key=True)
    prds_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    prds_viewed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    prds_edited: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    comments_made: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    login_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    time_spent_minutes: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    last_active_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_user_activity_team_date", "team_id", "date"),
        Index("ix_user_activity_date", "date"),
    )

    def __repr__(self) -> str:
        return f"<UserActivityRollup user={self.user_id!r} team={self.team_id!r} date={self.date}>"


# ---------------------------------------------------------------------------
# TeamActivityRollup
# ---------------------------------------------------------------------------
class TeamActivityRollup(Base):
    """Daily activity counters for one team."""
    __tablename__ = "team_activity_rollups"

    team_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    date: Mapped[dt.date] = mapped_column(Date, primary_key=True)
    prds_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    prds_edited: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    comments_added: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    collaboration_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    def __repr__(self) -> str:
        return f"<TeamActivityRollup team={self.team_id!r} date={self.date}>"


# ---------------------------------------------------------------------------
# DocumentAnalytics — not date-bucketed
# ---------------------------------------------------------------------------
class DocumentAnalytics(Base):
    """Lifetime counters for one document (PRD).

    ``engagement_score`` is maintained at write time by incrementing with the
    scorer's weights.  ``avg_completion_time`` is supplied by an external job
    and never written by the rollup maintainer.
    """
    __tablename__ = "document_analytics"

    document_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    team_id: Mapped[str] = mapped_column(String(64), nullable=False, default="", server_default="")
    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    edit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    comment_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    collaboration_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    ai_generations_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    like_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    share_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    clone_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    engagement_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    avg_completion_time: Mapped[float | None] = mapped_column(Float, nullable=True)
    document_created_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    first_viewed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_edited_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_document_analytics_team", "team_id"),
        Index("ix_document_analytics_created", "document_created_at"),
    )

    def __repr__(self) -> str:
        return f"<DocumentAnalytics doc={self.document_id!r} views={self.view_count}>"


# ---------------------------------------------------------------------------
# TemplateUsageRollup
# ---------------------------------------------------------------------------
class TemplateUsageRollup(Base):
    """Daily usage counter for one template within one team."""
    __tablename__ = "template_usage_rollups"

    template_name: Mapped[str] = mapped_column(String(255), primary_key=True)
    template_type: Mapped[str] = mapped_column(String(64), primary_key=True)
    team_id: Mapped[str] = mapped_column(String(64), primary_key=True, default="")
    date: Mapped[dt.date] = mapped_column(Date, primary_key=True)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    __table_args__ = (
        Index("ix_template_usage_date", "date"),
        Index("ix_template_usage_team_date", "team_id", "date"),
    )

    def __repr__(self) -> str:
        return (
            f"<TemplateUsageRollup name={self.template_name!r} "
            f"team={self.team_id!r} date={self.date}>"
        )


# Lookup used by the rollup writer and reconciliation job
FAMILY_MODELS: dict[RollupFamily, type[Base]] = {
    RollupFamily.USER: UserActivityRollup,
    RollupFamily.TEAM: TeamActivityRollup,
    RollupFamily.DOCUMENT: DocumentAnalytics,
    RollupFamily.TEMPLATE: TemplateUsageRollup,
}
