"""
docpulse.services.analytics_service — AnalyticsEngine Facade
=============================================================

The one object the rest of the application talks to.  Construct it once
at startup and inject it; there is no module-level singleton.

Write path (``record_event``):
    validate → append to the event store → merge into rollups

The write path never raises.  Analytics is eventually consistent and must
not fail the product request that emitted the event, so every failure is
logged and counted in :class:`IngestStats` instead.

Read path: synchronous report getters, plus two composite coroutines
(``get_dashboard`` / ``get_overview``) that fan their sections out to
worker threads and tolerate partial failure.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import Engine

from docpulse.config import AnalyticsConfig
from docpulse.database.engine import run_db
from docpulse.engine.events import AnalyticsEvent
from docpulse.engine.periods import TimeRange, parse_time_range, utc_now
from docpulse.engine.rollups import compute_deltas
from docpulse.errors import (
    DashboardUnavailableError,
    DuplicateEventError,
    MalformedEventError,
    NotFoundError,
)
from docpulse.services import reporting_service as reports
from docpulse.services.directory import TeamDirectory
from docpulse.services.event_store import EventStore
from docpulse.services.reconciliation_service import reconcile_rollups
from docpulse.services.retention_service import retention_rate
from docpulse.services.rollup_writer import RollupMaintainer

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Ingest counters
# ---------------------------------------------------------------------------
class IngestStats:
    """Thread-safe counters for the write path."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.recorded = 0
        self.duplicates = 0
        self.ingest_failures = 0
        self.rollup_failures = 0

    def bump(self, name: str) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + 1)

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return {
                "recorded": self.recorded,
                "duplicates": self.duplicates,
                "ingest_failures": self.ingest_failures,
                "rollup_failures": self.rollup_failures,
            }


# ---------------------------------------------------------------------------
# Composite report sections
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class DashboardSection:
    ok: bool
    data: Any = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = self.data
        if isinstance(data, list):
            data = [item.to_dict() for item in data]
        elif data is not None:
            data = data.to_dict()
        return {"ok": self.ok, "data": data, "error": self.error}


@dataclass(slots=True)
class CompositeReport:
    sections: dict[str, DashboardSection] = field(default_factory=dict)
    generated_at: datetime | None = None

    @property
    def partial(self) -> bool:
        return any(not s.ok for s in self.sections.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            **{name: section.to_dict() for name, section in self.sections.items()},
            "partial": self.partial,
            "generatedAt": self.generated_at.isoformat() if self.generated_at else None,
        }


# ---------------------------------------------------------------------------
# AnalyticsEngine
# ---------------------------------------------------------------------------
class AnalyticsEngine:
    """Ingestion and reporting over one database.

    Parameters
    ----------
    engine:
        SQLAlchemy engine for the event log and rollup tables.
    config:
        Report sizing and trending thresholds.
    directory:
        Optional team/user name lookup.  When given, unknown teams raise
        :class:`~docpulse.errors.NotFoundError` from team-scoped reports.
    clock:
        Returns "now"; overridden in tests.
    """

    def __init__(
        self,
        engine: Engine,
        config: AnalyticsConfig | None = None,
        directory: TeamDirectory | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.engine = engine
        self.config = config or AnalyticsConfig()
        self.directory = directory
        self.clock = clock
        self.store = EventStore(engine)
        self.rollups = RollupMaintainer(engine)
        self._stats = IngestStats()

    def _range(self, time_range: str | TimeRange | None) -> TimeRange:
        return parse_time_range(time_range, self.config.default_time_range)

    # -------------------------------------------------------------------
    # Write path
    # -------------------------------------------------------------------
    def record_event(self, event: AnalyticsEvent) -> None:
        """Store *event* and fold it into the rollups.  Never raises."""
        try:
            deltas = compute_deltas(event)
        except MalformedEventError as exc:
            self._stats.bump("ingest_failures")
            logger.warning("Rejected malformed %s event: %s", event.kind, exc)
            return
        except Exception:
            self._stats.bump("ingest_failures")
            logger.exception("Failed to derive rollups for %s event", event.kind)
            return

        try:
            event_id = self.store.append(event)
        except DuplicateEventError as exc:
            self._stats.bump("duplicates")
            logger.debug("Duplicate event ignored: id=%s", exc.event_id)
            return
        except Exception:
            self._stats.bump("ingest_failures")
            logger.exception("Failed to append %s event", event.kind)
            return

        self._stats.bump("recorded")
        try:
            self.rollups.apply_deltas(deltas)
        except Exception:
            self._stats.bump("rollup_failures")
            logger.exception("Rollup update failed for event %s (%s)", event_id, event.kind)

    def stats(self) -> dict[str, int]:
        return self._stats.snapshot()

    # -------------------------------------------------------------------
    # Single reports
    # -------------------------------------------------------------------
    def get_team_productivity(
        self, team_id: str, time_range: str | TimeRange | None = None,
    ) -> reports.TeamProductivity:
        return reports.team_productivity(
            self.engine, team_id, self._range(time_range),
            now=self.clock(),
            directory=self.directory,
            contributor_limit=self.config.top_contributors_limit,
        )

    def get_prd_trends(
        self, team_id: str | None = None, time_range: str | TimeRange | None = None,
    ) -> reports.PRDTrends:
        return reports.prd_trends(self.engine, team_id, self._range(time_range), now=self.clock())

    def get_template_usage_stats(
        self, team_id: str | None = None, limit: int | None = None,
    ) -> list[reports.TemplateUsage]:
        return reports.template_usage_stats(
            self.engine, team_id,
            now=self.clock(),
            directory=self.directory,
            team_usage_limit=self.config.team_usage_limit,
            limit=limit,
        )

    def get_user_engagement_insights(self, team_id: str | None = None) -> reports.UserEngagement:
        return reports.user_engagement_insights(
            self.engine, team_id,
            now=self.clock(),
            directory=self.directory,
            top_users_limit=self.config.top_users_limit,
        )

    def get_retention(self, team_id: str | None = None, window_days: int = 7) -> float:
        return retention_rate(self.engine, team_id, window_days, now=self.clock())

    def get_trending_documents(self, limit: int | None = None) -> list[reports.TrendingDocument]:
        return reports.trending_documents(
            self.engine,
            now=self.clock(),
            limit=limit or self.config.trending_limit,
            max_age_days=self.config.trending_max_age_days,
            min_engagement=self.config.trending_min_engagement,
        )

    def get_document_stats(self, document_id: str) -> reports.DocumentStats:
        return reports.document_stats(self.engine, document_id)

    def reconcile(self, dry_run: bool = False) -> dict:
        return reconcile_rollups(self.engine, dry_run=dry_run)

    # -------------------------------------------------------------------
    # Composite reports
    # -------------------------------------------------------------------
    async def _gather_sections(self, calls: dict[str, tuple]) -> CompositeReport:
        """Run every section on a worker thread; keep per-section outcomes.

        Cancelling the awaiting task cancels the gather and thereby every
        pending section.
        """
        names = list(calls)
        results = await asyncio.gather(
            *(run_db(func, *args) for func, *args in calls.values()),
            return_exceptions=True,
        )

        report = CompositeReport(generated_at=self.clock())
        errors: dict[str, str] = {}
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                logger.error("Dashboard section %s failed: %s", name, result, exc_info=result)
                errors[name] = str(result) or type(result).__name__
                report.sections[name] = DashboardSection(ok=False, error=errors[name])
            else:
                report.sections[name] = DashboardSection(ok=True, data=result)

        if len(errors) == len(names):
            raise DashboardUnavailableError(errors)
        return report

    async def get_dashboard(
        self, team_id: str, time_range: str | TimeRange | None = None,
    ) -> CompositeReport:
        """Team dashboard: the four reports fetched concurrently.

        Raises
        ------
        NotFoundError
            If a directory is configured and does not know *team_id*.
        DashboardUnavailableError
            If every section failed.
        """
        if self.directory is not None and self.directory.team_name(team_id) is None:
            raise NotFoundError(f"Unknown team: {team_id}")

        tr = self._range(time_range)
        return await self._gather_sections({
            "teamProductivity": (self.get_team_productivity, team_id, tr),
            "prdTrends": (self.get_prd_trends, team_id, tr),
            "templateUsage": (
                self.get_template_usage_stats, team_id, self.config.dashboard_template_limit,
            ),
            "userEngagement": (self.get_user_engagement_insights, team_id),
        })

    async def get_overview(self, time_range: str | TimeRange | None = None) -> CompositeReport:
        """Global overview across all teams."""
        tr = self._range(time_range)
        return await self._gather_sections({
            "prdTrends": (self.get_prd_trends, None, tr),
            "templateUsage": (
                self.get_template_usage_stats, None, self.config.overview_template_limit,
            ),
            "userEngagement": (self.get_user_engagement_insights, None),
        })
