"""
tests/test_analytics_service.py — AnalyticsEngine facade
=========================================================

Tests for:
- The end-to-end ingest → report scenario
- Write-path failure isolation (never raises, counted in stats)
- Concurrent dashboard / overview with partial results
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import patch

import pytest

from docpulse.config import AnalyticsConfig
from docpulse.engine.events import EventKind
from docpulse.errors import DashboardUnavailableError, NotFoundError
from docpulse.services.analytics_service import AnalyticsEngine
from docpulse.services.directory import StaticDirectory


# ==========================================================================
# WRITE PATH
# ==========================================================================
class TestRecordEvent:
    def test_end_to_end_scenario(self, analytics, make_event, now):
        first_view = now - timedelta(minutes=5)
        analytics.record_event(make_event(EventKind.PRD_CREATED, actor_user_id="U1", team_id="T1"))
        analytics.record_event(make_event(EventKind.PRD_VIEWED, document_id="D1", occurred_at=first_view))
        analytics.record_event(make_event(EventKind.PRD_VIEWED, document_id="D1"))
        analytics.record_event(make_event(
            EventKind.TEMPLATE_USED, team_id="T1",
            payload={"templateName": "Mobile App Feature PRD"},
        ))

        productivity = analytics.get_team_productivity("T1", "30d")
        assert productivity.total_prds >= 1
        contributors = {c.user_id: c for c in productivity.top_contributors}
        assert contributors["U1"].prds_created == 1

        doc = analytics.get_document_stats("D1")
        assert doc.view_count == 2
        assert doc.first_viewed_at == first_view

        templates = analytics.get_template_usage_stats("T1")
        assert [(t.template_name, t.usage_count) for t in templates] == [("Mobile App Feature PRD", 1)]
        assert analytics.stats()["recorded"] == 4

    def test_malformed_event_is_not_stored(self, analytics, make_event):
        analytics.record_event(make_event(EventKind.TEMPLATE_USED, actor_user_id="U1", payload={}))
        assert analytics.store.count() == 0
        assert analytics.stats()["ingest_failures"] == 1

    def test_duplicate_is_counted_not_applied_twice(self, analytics, make_event):
        event = make_event(EventKind.PRD_VIEWED, id="evt-1", document_id="D1")
        analytics.record_event(event)
        analytics.record_event(event)
        assert analytics.get_document_stats("D1").view_count == 1
        assert analytics.stats()["duplicates"] == 1

    def test_store_failure_is_swallowed(self, analytics, make_event):
        with patch.object(analytics.store, "append", side_effect=RuntimeError("db down")):
            analytics.record_event(make_event(EventKind.USER_LOGIN, actor_user_id="U1"))
        assert analytics.stats()["ingest_failures"] == 1
        assert analytics.stats()["recorded"] == 0

    def test_rollup_failure_keeps_the_event(self, analytics, make_event):
        with patch.object(analytics.rollups, "apply_deltas", side_effect=RuntimeError("lock timeout")):
            analytics.record_event(make_event(EventKind.USER_LOGIN, actor_user_id="U1"))
        assert analytics.store.count() == 1
        assert analytics.stats()["rollup_failures"] == 1

    def test_oversized_duration_is_an_ingest_failure(self, analytics, make_event):
        analytics.record_event(make_event(
            EventKind.SESSION_ENDED, actor_user_id="U1", payload={"durationMinutes": 10**400},
        ))
        assert analytics.store.count() == 0
        assert analytics.stats()["ingest_failures"] == 1

    def test_unexpected_delta_error_is_swallowed(self, analytics, make_event):
        with patch("docpulse.services.analytics_service.compute_deltas", side_effect=ValueError("bad row")):
            analytics.record_event(make_event(EventKind.USER_LOGIN, actor_user_id="U1"))
        assert analytics.store.count() == 0
        assert analytics.stats()["ingest_failures"] == 1

    def test_constraint_failure_is_not_a_duplicate(self, analytics, make_event):
        event = make_event(EventKind.USER_LOGIN, actor_user_id="U1")
        object.__setattr__(event, "category", None)
        analytics.record_event(event)
        stats = analytics.stats()
        assert stats["duplicates"] == 0
        assert stats["ingest_failures"] == 1
        assert stats["recorded"] == 0

    def test_retention_getter(self, analytics):
        assert analytics.get_retention(window_days=7) == 0.0


# ==========================================================================
# COMPOSITE REPORTS
# ==========================================================================
class TestDashboard:
    def _seed(self, analytics, make_event, templates=12):
        analytics.record_event(make_event(EventKind.PRD_CREATED, actor_user_id="U1", team_id="T1"))
        for i in range(templates):
            analytics.record_event(make_event(
                EventKind.TEMPLATE_USED, team_id="T1", payload={"templateName": f"Template {i:02d}"},
            ))

    def test_all_sections_ok(self, analytics, make_event, now):
        self._seed(analytics, make_event)
        report = asyncio.run(analytics.get_dashboard("T1", "7d"))

        assert set(report.sections) == {"teamProductivity", "prdTrends", "templateUsage", "userEngagement"}
        assert all(section.ok for section in report.sections.values())
        assert not report.partial
        assert len(report.sections["templateUsage"].data) == 10
        assert report.sections["teamProductivity"].data.total_prds == 1
        assert report.generated_at == now

        data = report.to_dict()
        assert data["generatedAt"] == now.isoformat()
        assert data["teamProductivity"]["data"]["totalPrds"] == 1

    def test_partial_failure(self, analytics, make_event):
        self._seed(analytics, make_event, templates=1)
        with patch.object(analytics, "get_prd_trends", side_effect=RuntimeError("boom")):
            report = asyncio.run(analytics.get_dashboard("T1"))

        assert report.partial
        assert report.sections["prdTrends"].ok is False
        assert report.sections["prdTrends"].error == "boom"
        assert report.sections["teamProductivity"].ok is True

    def test_cancelled_section_is_reported_as_failed(self, analytics, make_event):
        self._seed(analytics, make_event, templates=1)
        with patch.object(analytics, "get_prd_trends", side_effect=asyncio.CancelledError()):
            report = asyncio.run(analytics.get_dashboard("T1"))

        assert report.partial
        assert report.sections["prdTrends"].ok is False
        assert report.sections["prdTrends"].error
        data = report.to_dict()
        assert data["prdTrends"]["data"] is None
        assert data["teamProductivity"]["ok"] is True

    def test_all_sections_failing_raises(self, analytics):
        failing = RuntimeError("db down")
        with patch.object(analytics, "get_team_productivity", side_effect=failing), \
                patch.object(analytics, "get_prd_trends", side_effect=failing), \
                patch.object(analytics, "get_template_usage_stats", side_effect=failing), \
                patch.object(analytics, "get_user_engagement_insights", side_effect=failing):
            with pytest.raises(DashboardUnavailableError) as exc_info:
                asyncio.run(analytics.get_dashboard("T1"))
        assert set(exc_info.value.errors) == {
            "teamProductivity", "prdTrends", "templateUsage", "userEngagement",
        }

    def test_unknown_team(self, db_engine, now):
        analytics = AnalyticsEngine(db_engine, directory=StaticDirectory(teams={"T1": "Core"}), clock=lambda: now)
        with pytest.raises(NotFoundError):
            asyncio.run(analytics.get_dashboard("T9"))

    def test_overview_uses_overview_limit(self, db_engine, make_event, now):
        analytics = AnalyticsEngine(db_engine, AnalyticsConfig(overview_template_limit=3), clock=lambda: now)
        self._seed(analytics, make_event, templates=5)

        report = asyncio.run(analytics.get_overview())
        assert set(report.sections) == {"prdTrends", "templateUsage", "userEngagement"}
        assert len(report.sections["templateUsage"].data) == 3
