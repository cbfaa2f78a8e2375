"""
docpulse.services.reporting_service — Dashboard Reports
========================================================

Read-side aggregation over the rollup tables and the raw event log.

Every report is a synchronous function taking the engine first, so the
engine facade can fan several of them out with
``await run_db(team_productivity, engine, …)``.  Empty data yields
zero-valued results; every ratio guards its denominator.

Window anchors come from :class:`~docpulse.engine.periods.ReportWindow`:

- "this week" / "active"  → rollups dated ≥ today - 7
- "this month"            → rollups dated ≥ today - 30
- time range              → rollups dated ≥ today - 7/30/90
- template growth         → [today - 30, today] vs [today - 60, today - 30)
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import Engine, case, desc, distinct, func, select

from docpulse.constants import (
    NO_TEAM,
    TEAM_USAGE_LIMIT,
    TOP_CONTRIBUTORS_LIMIT,
    TOP_USERS_LIMIT,
    TRENDING_LIMIT,
    TRENDING_MAX_AGE_DAYS,
    TRENDING_MIN_ENGAGEMENT,
)
from docpulse.database.engine import get_session
from docpulse.database.models import (
    AnalyticsEventRow,
    DocumentAnalytics,
    TeamActivityRollup,
    TemplateUsageRollup,
    UserActivityRollup,
)
from docpulse.engine.events import EventKind
from docpulse.engine.periods import (
    ReportWindow,
    TimeRange,
    day_bucket,
    day_label,
    ensure_utc,
    month_label,
    parse_time_range,
    start_of_day,
    utc_now,
    week_label,
)
from docpulse.engine.scoring import DocumentSnapshot, percent_change, rank_trending
from docpulse.errors import NotFoundError
from docpulse.services.directory import TeamDirectory
from docpulse.services.retention_service import retention_summary

logger = logging.getLogger(__name__)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _camelize(value: Any) -> Any:
    if isinstance(value, dict):
        return {_camel(k): _camelize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_camelize(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class _Report:
    """Mixin: JSON-ready dict with camelCase keys."""

    __slots__ = ()

    def to_dict(self) -> dict[str, Any]:
        return _camelize(asdict(self))


def _team_name(directory: TeamDirectory | None, team_id: str) -> str:
    if directory is None:
        return team_id
    return directory.team_name(team_id) or team_id


def _user_name(directory: TeamDirectory | None, user_id: str) -> str:
    if directory is None:
        return user_id
    return directory.user_name(user_id) or user_id


# ---------------------------------------------------------------------------
# Team productivity
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class Contributor(_Report):
    user_id: str
    user_name: str
    prds_created: int
    comments_count: int


@dataclass(slots=True)
class TeamProductivity(_Report):
    team_id: str
    team_name: str
    total_prds: int = 0
    prds_this_week: int = 0
    prds_this_month: int = 0
    active_users: int = 0
    total_comments: int = 0
    avg_completion_time: float = 0.0
    collaboration_sessions: int = 0
    top_contributors: list[Contributor] = field(default_factory=list)


def team_productivity(
    engine: Engine,
    team_id: str,
    time_range: str | TimeRange | None = None,
    *,
    now: datetime | None = None,
    directory: TeamDirectory | None = None,
    contributor_limit: int = TOP_CONTRIBUTORS_LIMIT,
) -> TeamProductivity:
    """Team totals, recent activity and top contributors.

    Raises
    ------
    NotFoundError
        If *directory* is given and does not know *team_id*.
    """
    if directory is not None and directory.team_name(team_id) is None:
        raise NotFoundError(f"Unknown team: {team_id}")

    window = ReportWindow.for_range(parse_time_range(time_range), now)
    T = TeamActivityRollup
    U = UserActivityRollup

    with get_session(engine) as session:
        totals = session.execute(
            select(
                func.coalesce(func.sum(T.prds_created), 0),
                func.coalesce(func.sum(case((T.date >= window.week_ago, T.prds_created), else_=0)), 0),
                func.coalesce(func.sum(case((T.date >= window.month_ago, T.prds_created), else_=0)), 0),
                func.coalesce(func.sum(T.comments_added), 0),
                func.coalesce(func.sum(case((T.date >= window.start, T.collaboration_sessions), else_=0)), 0),
            ).where(T.team_id == team_id)
        ).one()

        active_users = session.scalar(
            select(func.count(distinct(U.user_id))).where(
                U.team_id == team_id, U.date >= window.week_ago,
            )
        ) or 0

        avg_completion = session.scalar(
            select(func.avg(DocumentAnalytics.avg_completion_time)).where(
                DocumentAnalytics.team_id == team_id,
                DocumentAnalytics.avg_completion_time.is_not(None),
            )
        )

        prds = func.sum(U.prds_created).label("prds")
        comments = func.sum(U.comments_made).label("comments")
        contributor_rows = session.execute(
            select(U.user_id, prds, comments)
            .where(U.team_id == team_id, U.date >= window.start)
            .group_by(U.user_id)
            .order_by(desc("prds"), desc("comments"), U.user_id)
            .limit(contributor_limit)
        ).all()

    return TeamProductivity(
        team_id=team_id,
        team_name=_team_name(directory, team_id),
        total_prds=int(totals[0]),
        prds_this_week=int(totals[1]),
        prds_this_month=int(totals[2]),
        active_users=int(active_users),
        total_comments=int(totals[3]),
        avg_completion_time=float(avg_completion or 0.0),
        collaboration_sessions=int(totals[4]),
        top_contributors=[
            Contributor(
                user_id=row.user_id,
                user_name=_user_name(directory, row.user_id),
                prds_created=int(row.prds or 0),
                comments_count=int(row.comments or 0),
            )
            for row in contributor_rows
        ],
    )


# ---------------------------------------------------------------------------
# PRD trends
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class TrendBucket(_Report):
    period: str
    prds_created: int = 0
    prds_edited: int = 0
    active_users: int = 0


@dataclass(slots=True)
class PRDTrends(_Report):
    daily: list[TrendBucket] = field(default_factory=list)
    weekly: list[TrendBucket] = field(default_factory=list)
    monthly: list[TrendBucket] = field(default_factory=list)


class _TrendAccumulator:
    def __init__(self) -> None:
        self.created = 0
        self.edited = 0
        self.actors: set[str] = set()

    def add(self, kind: str, actor: str | None) -> None:
        if kind == EventKind.PRD_CREATED:
            self.created += 1
        else:
            self.edited += 1
        if actor:
            self.actors.add(actor)


def _buckets(acc: dict[str, _TrendAccumulator]) -> list[TrendBucket]:
    return [
        TrendBucket(
            period=label,
            prds_created=item.created,
            prds_edited=item.edited,
            active_users=len(item.actors),
        )
        for label, item in sorted(acc.items())
    ]


def prd_trends(
    engine: Engine,
    team_id: str | None = None,
    time_range: str | TimeRange | None = None,
    *,
    now: datetime | None = None,
) -> PRDTrends:
    """Created / edited counts and distinct authors per day, week and month.

    Daily buckets cover the time range, weekly the last 30 days, monthly the
    last 365 days.  Periods without events are omitted.
    """
    window = ReportWindow.for_range(parse_time_range(time_range), now)
    E = AnalyticsEventRow

    stmt = select(E.kind, E.actor_user_id, E.occurred_at).where(
        E.kind.in_([EventKind.PRD_CREATED, EventKind.PRD_EDITED]),
        E.occurred_at >= start_of_day(window.year_ago),
    )
    if team_id is not None:
        stmt = stmt.where(E.team_id == team_id)

    daily: dict[str, _TrendAccumulator] = defaultdict(_TrendAccumulator)
    weekly: dict[str, _TrendAccumulator] = defaultdict(_TrendAccumulator)
    monthly: dict[str, _TrendAccumulator] = defaultdict(_TrendAccumulator)

    with get_session(engine) as session:
        for kind, actor, occurred_at in session.execute(stmt):
            day = day_bucket(occurred_at)
            if day > window.today:
                continue
            if day >= window.start:
                daily[day_label(day)].add(kind, actor)
            if day >= window.month_ago:
                weekly[week_label(day)].add(kind, actor)
            monthly[month_label(day)].add(kind, actor)

    return PRDTrends(daily=_buckets(daily), weekly=_buckets(weekly), monthly=_buckets(monthly))


# ---------------------------------------------------------------------------
# Template usage
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class TeamUsage(_Report):
    team_id: str
    team_name: str
    usage_count: int


@dataclass(slots=True)
class TemplateUsage(_Report):
    template_name: str
    template_type: str
    usage_count: int
    usage_growth: float
    popularity_rank: int
    team_usage: list[TeamUsage] = field(default_factory=list)


def template_usage_stats(
    engine: Engine,
    team_id: str | None = None,
    *,
    now: datetime | None = None,
    directory: TeamDirectory | None = None,
    team_usage_limit: int = TEAM_USAGE_LIMIT,
    limit: int | None = None,
) -> list[TemplateUsage]:
    """Templates used in the last 30 days, ranked by usage.

    ``usage_growth`` compares against the 30 days before that and is 0 when
    the template had no prior usage.  ``team_usage`` is the cross-team
    breakdown of the same window (team-less usage excluded).
    """
    window = ReportWindow.for_range(TimeRange.LAST_30_DAYS, now)
    R = TemplateUsageRollup
    usage = func.sum(R.usage_count).label("usage")

    def _scoped(stmt):
        return stmt.where(R.team_id == team_id) if team_id is not None else stmt

    with get_session(engine) as session:
        current = session.execute(_scoped(
            select(R.template_name, R.template_type, usage)
            .where(R.date >= window.month_ago, R.date <= window.today)
            .group_by(R.template_name, R.template_type)
        )).all()
        previous = session.execute(_scoped(
            select(R.template_name, R.template_type, usage)
            .where(R.date >= window.two_months_ago, R.date < window.month_ago)
            .group_by(R.template_name, R.template_type)
        )).all()
        by_team = session.execute(
            select(R.template_name, R.template_type, R.team_id, usage)
            .where(R.date >= window.month_ago, R.date <= window.today, R.team_id != NO_TEAM)
            .group_by(R.template_name, R.template_type, R.team_id)
        ).all()

    prev_usage = {(row.template_name, row.template_type): int(row.usage) for row in previous}
    team_breakdown: dict[tuple[str, str], list[tuple[str, int]]] = defaultdict(list)
    for row in by_team:
        team_breakdown[(row.template_name, row.template_type)].append((row.team_id, int(row.usage)))

    ranked = sorted(
        ((row.template_name, row.template_type, int(row.usage)) for row in current if row.usage),
        key=lambda item: (-item[2], item[0], item[1]),
    )
    if limit is not None:
        ranked = ranked[:limit]

    results: list[TemplateUsage] = []
    for rank, (name, template_type, count) in enumerate(ranked, start=1):
        teams = sorted(team_breakdown.get((name, template_type), []), key=lambda t: (-t[1], t[0]))
        results.append(TemplateUsage(
            template_name=name,
            template_type=template_type,
            usage_count=count,
            usage_growth=percent_change(count, prev_usage.get((name, template_type), 0)),
            popularity_rank=rank,
            team_usage=[
                TeamUsage(team_id=tid, team_name=_team_name(directory, tid), usage_count=n)
                for tid, n in teams[:team_usage_limit]
            ],
        ))
    return results


# ---------------------------------------------------------------------------
# User engagement
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class TopUser(_Report):
    user_id: str
    user_name: str
    time_spent: float
    prds_created: int
    last_active: datetime | None


@dataclass(slots=True)
class UserEngagement(_Report):
    total_users: int = 0
    active_users: int = 0
    new_users: int = 0
    average_session_time: float = 0.0
    retention: dict[str, float] = field(default_factory=dict)
    top_users: list[TopUser] = field(default_factory=list)


def user_engagement_insights(
    engine: Engine,
    team_id: str | None = None,
    *,
    now: datetime | None = None,
    directory: TeamDirectory | None = None,
    top_users_limit: int = TOP_USERS_LIMIT,
) -> UserEngagement:
    """User counts, average session time, retention and the most engaged users."""
    now = now or utc_now()
    window = ReportWindow.for_range(TimeRange.LAST_30_DAYS, now)
    U = UserActivityRollup

    def _scoped(stmt):
        return stmt.where(U.team_id == team_id) if team_id is not None else stmt

    with get_session(engine) as session:
        total_users = session.scalar(_scoped(select(func.count(distinct(U.user_id))))) or 0
        active_users = session.scalar(_scoped(
            select(func.count(distinct(U.user_id))).where(U.date >= window.week_ago)
        )) or 0

        first_seen = _scoped(
            select(U.user_id, func.min(U.date).label("first_day")).group_by(U.user_id)
        ).subquery()
        new_users = session.scalar(
            select(func.count()).select_from(first_seen)
            .where(first_seen.c.first_day >= window.month_ago)
        ) or 0

        avg_time = session.scalar(_scoped(
            select(func.avg(U.time_spent_minutes)).where(U.date >= window.month_ago)
        ))

        time_spent = func.sum(U.time_spent_minutes).label("time_spent")
        top_rows = session.execute(_scoped(
            select(
                U.user_id,
                time_spent,
                func.sum(U.prds_created).label("prds"),
                func.max(U.last_active_at).label("last_active"),
            )
            .where(U.date >= window.month_ago)
            .group_by(U.user_id)
            .order_by(desc("time_spent"), U.user_id)
            .limit(top_users_limit)
        )).all()

    return UserEngagement(
        total_users=int(total_users),
        active_users=int(active_users),
        new_users=int(new_users),
        average_session_time=float(avg_time or 0.0),
        retention=retention_summary(engine, team_id, now=now),
        top_users=[
            TopUser(
                user_id=row.user_id,
                user_name=_user_name(directory, row.user_id),
                time_spent=float(row.time_spent or 0.0),
                prds_created=int(row.prds or 0),
                last_active=ensure_utc(row.last_active) if row.last_active else None,
            )
            for row in top_rows
        ],
    )


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class DocumentStats(_Report):
    document_id: str
    team_id: str | None
    view_count: int
    edit_count: int
    comment_count: int
    collaboration_sessions: int
    ai_generations_used: int
    like_count: int
    share_count: int
    clone_count: int
    engagement_score: int
    avg_completion_time: float | None
    created_at: datetime | None
    first_viewed_at: datetime | None
    last_edited_at: datetime | None


def _as_utc(value: datetime | None) -> datetime | None:
    return ensure_utc(value) if value is not None else None


def document_stats(engine: Engine, document_id: str) -> DocumentStats:
    """Lifetime counters of one document.

    Raises
    ------
    NotFoundError
        If no event has touched the document yet.
    """
    with get_session(engine) as session:
        row = session.get(DocumentAnalytics, document_id)
        if row is None:
            raise NotFoundError(f"No analytics for document: {document_id}")
        return DocumentStats(
            document_id=row.document_id,
            team_id=row.team_id or None,
            view_count=row.view_count,
            edit_count=row.edit_count,
            comment_count=row.comment_count,
            collaboration_sessions=row.collaboration_sessions,
            ai_generations_used=row.ai_generations_used,
            like_count=row.like_count,
            share_count=row.share_count,
            clone_count=row.clone_count,
            engagement_score=row.engagement_score,
            avg_completion_time=row.avg_completion_time,
            created_at=_as_utc(row.document_created_at),
            first_viewed_at=_as_utc(row.first_viewed_at),
            last_edited_at=_as_utc(row.last_edited_at),
        )


@dataclass(slots=True)
class TrendingDocument(_Report):
    document_id: str
    trending_score: float
    engagement_score: int
    view_count: int
    like_count: int
    share_count: int
    created_at: datetime


def trending_documents(
    engine: Engine,
    *,
    now: datetime | None = None,
    limit: int = TRENDING_LIMIT,
    max_age_days: int = TRENDING_MAX_AGE_DAYS,
    min_engagement: int = TRENDING_MIN_ENGAGEMENT,
) -> list[TrendingDocument]:
    """Recently created documents ranked by decayed engagement."""
    now = ensure_utc(now or utc_now())
    D = DocumentAnalytics
    stmt = select(D).where(D.document_created_at >= now - timedelta(days=max_age_days))

    with get_session(engine) as session:
        snapshots = [
            DocumentSnapshot(
                document_id=row.document_id,
                created_at=ensure_utc(row.document_created_at),
                views=row.view_count,
                likes=row.like_count,
                shares=row.share_count,
                clones=row.clone_count,
            )
            for row in session.scalars(stmt)
        ]

    ranked = rank_trending(
        snapshots, now, limit=limit, max_age_days=max_age_days, min_engagement=min_engagement,
    )
    return [
        TrendingDocument(
            document_id=snap.document_id,
            trending_score=score,
            engagement_score=snap.engagement,
            view_count=snap.views,
            like_count=snap.likes,
            share_count=snap.shares,
            created_at=snap.created_at,
        )
        for snap, score in ranked
    ]
