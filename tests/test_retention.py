"""
tests/test_retention.py — Cohort retention from user rollups
=============================================================
"""

from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy.orm import Session

from docpulse.database.models import UserActivityRollup
from docpulse.services.retention_service import retention_rate, retention_summary


def _activity(engine, *rows: tuple[str, str, date]) -> None:
    with Session(engine) as session:
        for user_id, team_id, day in rows:
            session.add(UserActivityRollup(user_id=user_id, team_id=team_id, date=day))
        session.commit()


class TestRetentionRate:
    """now = 2026-03-18, window 7 → cohort [03-04, 03-11), return [03-11, 03-18]."""

    def test_four_cohort_two_returned_is_fifty(self, db_engine, now):
        _activity(
            db_engine,
            ("U1", "", date(2026, 3, 5)),
            ("U2", "", date(2026, 3, 6)),
            ("U3", "", date(2026, 3, 7)),
            ("U4", "", date(2026, 3, 10)),
            ("U1", "", date(2026, 3, 15)),
            ("U2", "", date(2026, 3, 18)),
            ("U5", "", date(2026, 3, 16)),  # new, not part of the cohort
        )
        assert retention_rate(db_engine, window_days=7, now=now) == pytest.approx(50.0)

    def test_empty_cohort_is_zero(self, db_engine, now):
        _activity(db_engine, ("U1", "", date(2026, 3, 17)))
        assert retention_rate(db_engine, window_days=7, now=now) == 0.0

    def test_window_start_day_counts_as_return(self, db_engine, now):
        _activity(
            db_engine,
            ("U1", "", date(2026, 3, 4)),
            ("U1", "", date(2026, 3, 11)),
            ("U2", "", date(2026, 3, 3)),  # before the cohort window
            ("U2", "", date(2026, 3, 12)),
        )
        assert retention_rate(db_engine, window_days=7, now=now) == pytest.approx(100.0)

    def test_team_filter_applies_to_both_sets(self, db_engine, now):
        _activity(
            db_engine,
            ("U1", "T1", date(2026, 3, 5)),
            ("U1", "T2", date(2026, 3, 15)),
        )
        assert retention_rate(db_engine, "T1", 7, now=now) == 0.0
        assert retention_rate(db_engine, None, 7, now=now) == pytest.approx(100.0)

    def test_daily_window(self, db_engine, now):
        _activity(
            db_engine,
            ("U1", "", date(2026, 3, 16)),
            ("U2", "", date(2026, 3, 16)),
            ("U1", "", date(2026, 3, 17)),
        )
        assert retention_rate(db_engine, window_days=1, now=now) == pytest.approx(50.0)

    @pytest.mark.parametrize("window", [0, -7, True])
    def test_non_positive_window_rejected(self, db_engine, now, window):
        with pytest.raises(ValueError):
            retention_rate(db_engine, window_days=window, now=now)

    def test_summary_has_standard_windows(self, db_engine, now):
        summary = retention_summary(db_engine, now=now)
        assert summary == {"daily": 0.0, "weekly": 0.0, "monthly": 0.0}
