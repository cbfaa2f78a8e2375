"""
tests/test_api_routes.py — HTTP surface
========================================

Uses the FastAPI TestClient with ``get_analytics`` overridden, so no
``DATABASE_URL`` is needed and the lifespan hook never runs.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from docpulse.api.deps import get_analytics
from docpulse.api.main import app
from docpulse.config import AnalyticsConfig
from docpulse.services.analytics_service import AnalyticsEngine
from docpulse.services.directory import StaticDirectory


@pytest.fixture
def client(analytics):
    app.dependency_overrides[get_analytics] = lambda: analytics
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


def _track(client, body, team="T1", user="U1"):
    headers = {"X-Team-Id": team, "X-User-Id": user} if team else {"X-User-Id": user}
    return client.post("/api/analytics/events", json=body, headers=headers)


class TestIngestion:
    def test_track_event_accepted(self, client, analytics):
        resp = _track(client, {"eventType": "prd_created", "eventCategory": "prd", "prdId": "D1"})
        assert resp.status_code == 202
        assert resp.json() == {"status": "accepted"}

        stored = analytics.store.query()
        assert len(stored) == 1
        assert stored[0].actor_user_id == "U1"
        assert stored[0].team_id == "T1"
        assert stored[0].document_id == "D1"
        assert stored[0].client_meta["user_agent"]

    def test_malformed_payload_still_accepted(self, client, analytics):
        resp = _track(client, {"kind": "template_used", "payload": {}})
        assert resp.status_code == 202
        assert analytics.stats()["ingest_failures"] == 1

    def test_missing_kind_is_rejected(self, client):
        assert _track(client, {"payload": {}}).status_code == 422

    def test_empty_category_is_rejected(self, client):
        assert _track(client, {"eventType": "user_login", "eventCategory": ""}).status_code == 422

    def test_oversized_duration_still_accepted(self, client, analytics):
        resp = _track(client, {"eventType": "session_ended", "eventData": {"durationMinutes": 10**400}})
        assert resp.status_code == 202
        assert analytics.stats()["ingest_failures"] == 1
        assert analytics.store.count() == 0


class TestReports:
    def test_team_productivity_requires_team(self, client):
        assert client.get("/api/analytics/team-productivity").status_code == 400

    def test_team_productivity_via_query_param(self, client):
        _track(client, {"eventType": "prd_created"})
        resp = client.get("/api/analytics/team-productivity", params={"teamId": "T1", "timeRange": "7d"})
        assert resp.status_code == 200
        assert resp.json()["totalPrds"] == 1
        assert resp.json()["topContributors"][0]["userId"] == "U1"

    def test_unknown_time_range_falls_back(self, client):
        resp = client.get("/api/analytics/prd-trends", params={"timeRange": "forever"})
        assert resp.status_code == 200
        assert set(resp.json()) == {"daily", "weekly", "monthly"}

    def test_template_usage_and_engagement(self, client):
        _track(client, {"eventType": "template_used", "eventData": {"templateName": "API Spec"}})
        templates = client.get("/api/analytics/template-usage", headers={"X-Team-Id": "T1"}).json()
        assert templates[0]["templateName"] == "API Spec"
        assert templates[0]["popularityRank"] == 1

        engagement = client.get("/api/analytics/user-engagement").json()
        assert engagement["totalUsers"] == 1
        assert set(engagement["retention"]) == {"daily", "weekly", "monthly"}

    def test_unknown_team_is_404(self, db_engine, now):
        analytics = AnalyticsEngine(db_engine, directory=StaticDirectory(teams={"T1": "Core"}), clock=lambda: now)
        app.dependency_overrides[get_analytics] = lambda: analytics
        try:
            client = TestClient(app, raise_server_exceptions=False)
            assert client.get("/api/analytics/team-productivity", headers={"X-Team-Id": "T9"}).status_code == 404
            assert client.get("/api/analytics/dashboard", headers={"X-Team-Id": "T9"}).status_code == 404
        finally:
            app.dependency_overrides.clear()

    def test_configured_directory_reaches_the_engine(self, db_engine):
        config = AnalyticsConfig(directory=StaticDirectory(teams={"T1": "Core"}))
        get_analytics.cache_clear()
        try:
            with patch("docpulse.api.deps.get_engine", return_value=db_engine), \
                    patch("docpulse.api.deps.get_config", return_value=config):
                analytics = get_analytics()
            assert analytics.directory is config.directory
            client = TestClient(app, raise_server_exceptions=False)
            app.dependency_overrides[get_analytics] = lambda: analytics
            assert client.get("/api/analytics/team-productivity", headers={"X-Team-Id": "T9"}).status_code == 404
        finally:
            app.dependency_overrides.clear()
            get_analytics.cache_clear()


class TestComposite:
    def test_dashboard(self, client, now):
        _track(client, {"eventType": "prd_created"})
        resp = client.get("/api/analytics/dashboard", headers={"X-Team-Id": "T1"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["teamProductivity"]["ok"] is True
        assert body["teamProductivity"]["data"]["totalPrds"] == 1
        assert body["partial"] is False
        assert body["generatedAt"] == now.isoformat()

    def test_dashboard_requires_team(self, client):
        assert client.get("/api/analytics/dashboard").status_code == 400

    def test_dashboard_all_sections_failing_is_503(self, client, analytics):
        failing = RuntimeError("db down")
        with patch.object(analytics, "get_team_productivity", side_effect=failing), \
                patch.object(analytics, "get_prd_trends", side_effect=failing), \
                patch.object(analytics, "get_template_usage_stats", side_effect=failing), \
                patch.object(analytics, "get_user_engagement_insights", side_effect=failing):
            resp = client.get("/api/analytics/dashboard", headers={"X-Team-Id": "T1"})
        assert resp.status_code == 503

    def test_overview(self, client):
        resp = client.get("/api/analytics/overview")
        assert resp.status_code == 200
        assert set(resp.json()) >= {"prdTrends", "templateUsage", "userEngagement", "generatedAt"}


class TestDocumentsAndMaintenance:
    def test_document_stats(self, client):
        _track(client, {"eventType": "prd_liked", "prdId": "D1"})
        resp = client.get("/api/analytics/documents/D1")
        assert resp.status_code == 200
        assert resp.json()["likeCount"] == 1
        assert resp.json()["engagementScore"] == 2

    def test_document_stats_unknown(self, client):
        assert client.get("/api/analytics/documents/missing").status_code == 404

    def test_trending(self, client):
        resp = client.get("/api/analytics/trending", params={"limit": 5})
        assert resp.status_code == 200
        assert resp.json() == []

    def test_reconciliation(self, client):
        _track(client, {"eventType": "user_login"})
        resp = client.post("/api/analytics/reconciliation/run", params={"dryRun": "true"})
        assert resp.status_code == 200
        assert resp.json()["dry_run"] is True
        assert resp.json()["corrected"] == 0

    def test_health(self, client):
        _track(client, {"eventType": "user_login"})
        assert client.get("/api/health").json() == {"status": "ok"}
        body = client.get("/api/analytics/health").json()
        assert body["ingest"]["recorded"] == 1
