"""
tests/test_scoring.py — Engagement and trending scores
=======================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from docpulse.engine.scoring import (
    DocumentSnapshot,
    decay_factor,
    engagement_score,
    percent_change,
    percentage,
    rank_trending,
    trending_score,
)

NOW = datetime(2026, 3, 18, 12, 0, tzinfo=UTC)


class TestEngagementScore:
    def test_weights(self):
        assert engagement_score(100, 10, 2, 1) == 131

    def test_zero(self):
        assert engagement_score() == 0

    @pytest.mark.parametrize("counts", [(-1, 0, 0, 0), (0, -1, 0, 0), (0, 0, -1, 0), (0, 0, 0, -1)])
    def test_negative_counts_rejected(self, counts):
        with pytest.raises(ValueError):
            engagement_score(*counts)


class TestDecay:
    def test_fresh_content_is_undecayed(self):
        assert decay_factor(0) == 1.0

    def test_one_day_halves(self):
        assert decay_factor(24) == pytest.approx(0.5)

    def test_floor(self):
        assert decay_factor(24 * 365) == pytest.approx(0.1)

    def test_negative_age_counts_as_new(self):
        assert decay_factor(-5) == 1.0

    def test_monotonically_non_increasing(self):
        hours = [0, 1, 6, 12, 24, 48, 96, 216, 500, 10_000]
        factors = [decay_factor(h) for h in hours]
        assert all(a >= b for a, b in zip(factors, factors[1:]))
        assert all(f >= 0.1 for f in factors)


class TestTrendingScore:
    def test_one_day_old(self):
        # raw = 10 + 2*5 = 20, halved after 24h
        assert trending_score(10, 5, 0, NOW - timedelta(hours=24), NOW) == pytest.approx(10.0)

    def test_newer_beats_older_with_same_counts(self):
        newer = trending_score(50, 5, 5, NOW - timedelta(hours=2), NOW)
        older = trending_score(50, 5, 5, NOW - timedelta(hours=30), NOW)
        assert newer > older

    def test_clones_do_not_affect_trending(self):
        a = DocumentSnapshot("D1", NOW, views=20, clones=0)
        b = DocumentSnapshot("D1", NOW, views=20, clones=50)
        assert a.trending(NOW) == b.trending(NOW)
        assert b.engagement == a.engagement + 250

    def test_naive_created_at_treated_as_utc(self):
        naive = (NOW - timedelta(hours=24)).replace(tzinfo=None)
        assert trending_score(10, 5, 0, naive, NOW) == pytest.approx(10.0)


class TestRatios:
    def test_growth_without_base_is_zero(self):
        assert percent_change(5, 0) == 0.0

    def test_growth(self):
        assert percent_change(15, 10) == pytest.approx(50.0)
        assert percent_change(5, 10) == pytest.approx(-50.0)

    def test_percentage_empty_denominator(self):
        assert percentage(3, 0) == 0.0
        assert percentage(1, 4) == pytest.approx(25.0)


class TestRankTrending:
    def test_filters_by_age_and_threshold(self):
        snaps = [
            DocumentSnapshot("fresh", NOW - timedelta(hours=1), views=11),
            DocumentSnapshot("stale", NOW - timedelta(days=8), views=500),
            DocumentSnapshot("quiet", NOW - timedelta(hours=1), views=10),
        ]
        ranked = rank_trending(snaps, NOW)
        assert [s.document_id for s, _ in ranked] == ["fresh"]

    def test_orders_by_score_then_id(self):
        created = NOW - timedelta(hours=3)
        snaps = [
            DocumentSnapshot("b", created, views=30),
            DocumentSnapshot("a", created, views=30),
            DocumentSnapshot("c", created, views=60),
        ]
        ranked = rank_trending(snaps, NOW)
        assert [s.document_id for s, _ in ranked] == ["c", "a", "b"]

    def test_limit(self):
        snaps = [DocumentSnapshot(f"d{i:02d}", NOW, views=20 + i) for i in range(30)]
        ranked = rank_trending(snaps, NOW, limit=20)
        assert len(ranked) == 20
        assert ranked[0][0].document_id == "d29"
