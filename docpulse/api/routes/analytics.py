"""
docpulse.api.routes.analytics — Analytics Endpoints
====================================================

Thin HTTP surface over :class:`~docpulse.services.analytics_service.AnalyticsEngine`:
    - Event ingestion (fire-and-forget, 202)
    - Team productivity / PRD trends / template usage / user engagement
    - Team dashboard and global overview (concurrent, partial results)
    - Trending documents and per-document stats
    - Rollup reconciliation trigger

Authentication is handled upstream; the caller's team and user arrive in
``X-Team-Id`` / ``X-User-Id``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, HTTPException, Query, Request, status
from pydantic import AliasChoices, BaseModel, Field

from docpulse.api.deps import ActorId, Analytics, TeamId
from docpulse.engine.events import AnalyticsEvent, EventCategory
from docpulse.errors import DashboardUnavailableError, NotFoundError

router = APIRouter(prefix="/analytics", tags=["analytics"])

TimeRangeParam = Annotated[str | None, Query(alias="timeRange")]


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class TrackEventRequest(BaseModel):
    """Ingestion body.  Accepts both snake_case and the web client's names."""
    kind: str = Field(min_length=1, validation_alias=AliasChoices("kind", "eventType"))
    category: str = Field(
        default=EventCategory.PRD,
        min_length=1,
        validation_alias=AliasChoices("category", "eventCategory"),
    )
    payload: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("payload", "eventData"),
    )
    document_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("document_id", "documentId", "prdId"),
    )
    session_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("session_id", "sessionId"),
    )
    occurred_at: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("occurred_at", "occurredAt"),
    )


class AcceptedResponse(BaseModel):
    status: str = "accepted"


def _require_team(team_id: str | None) -> str:
    if not team_id:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Team ID is required")
    return team_id


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------
@router.post("/events", status_code=status.HTTP_202_ACCEPTED, response_model=AcceptedResponse)
def track_event(
    body: TrackEventRequest,
    request: Request,
    analytics: Analytics,
    team_id: TeamId,
    actor_id: ActorId,
):
    """Record one usage event.  Analytics failures never fail the caller."""
    client_meta = {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }
    event = AnalyticsEvent(
        kind=body.kind,
        category=body.category,
        occurred_at=body.occurred_at or analytics.clock(),
        actor_user_id=actor_id,
        team_id=team_id,
        document_id=body.document_id,
        payload=body.payload,
        session_id=body.session_id,
        client_meta=client_meta,
    )
    analytics.record_event(event)
    return AcceptedResponse()


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------
@router.get("/team-productivity")
def team_productivity(analytics: Analytics, team_id: TeamId, time_range: TimeRangeParam = None):
    """Team totals and top contributors; 404 if the configured directory does not list the team."""
    team = _require_team(team_id)
    try:
        return analytics.get_team_productivity(team, time_range).to_dict()
    except NotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, str(exc))


@router.get("/prd-trends")
def prd_trends(analytics: Analytics, team_id: TeamId, time_range: TimeRangeParam = None):
    return analytics.get_prd_trends(team_id, time_range).to_dict()


@router.get("/template-usage")
def template_usage(analytics: Analytics, team_id: TeamId):
    return [item.to_dict() for item in analytics.get_template_usage_stats(team_id)]


@router.get("/user-engagement")
def user_engagement(analytics: Analytics, team_id: TeamId):
    return analytics.get_user_engagement_insights(team_id).to_dict()


@router.get("/dashboard")
async def dashboard(analytics: Analytics, team_id: TeamId, time_range: TimeRangeParam = None):
    """All four team reports, fetched concurrently; 404 as for ``/team-productivity``."""
    team = _require_team(team_id)
    try:
        report = await analytics.get_dashboard(team, time_range)
    except NotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, str(exc))
    except DashboardUnavailableError as exc:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, str(exc))
    return report.to_dict()


@router.get("/overview")
async def overview(analytics: Analytics, time_range: TimeRangeParam = None):
    """Global trends, templates and engagement across all teams."""
    try:
        report = await analytics.get_overview(time_range)
    except DashboardUnavailableError as exc:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, str(exc))
    return report.to_dict()


@router.get("/trending")
def trending(analytics: Analytics, limit: Annotated[int | None, Query(ge=1, le=100)] = None):
    return [doc.to_dict() for doc in analytics.get_trending_documents(limit)]


@router.get("/documents/{document_id}")
def document_stats(document_id: str, analytics: Analytics):
    try:
        return analytics.get_document_stats(document_id).to_dict()
    except NotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, str(exc))


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------
@router.post("/reconciliation/run")
def run_reconciliation(analytics: Analytics, dry_run: Annotated[bool, Query(alias="dryRun")] = False):
    """Replay the event log and correct rollup drift."""
    return analytics.reconcile(dry_run=dry_run)


@router.get("/health")
def health(analytics: Analytics):
    return {"status": "ok", "ingest": analytics.stats()}
