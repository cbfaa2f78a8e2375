"""
docpulse.services.retention_service — Cohort Retention
=======================================================

N-day retention computed from user activity rollups.

For a window of *w* days anchored on today (UTC):

    cohort   = users active in [today - 2w, today - w)
    returned = cohort users also active in [today - w, today]
    rate     = 100 * |returned| / |cohort|   (0 for an empty cohort)

A user is "active" on a day when a user rollup row exists for that day.
When a team is given, both sets are restricted to that team's rollups.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import Engine, select

from docpulse.constants import RETENTION_WINDOWS
from docpulse.database.engine import get_session
from docpulse.database.models import UserActivityRollup
from docpulse.engine.periods import day_bucket, utc_now
from docpulse.engine.scoring import percentage

logger = logging.getLogger(__name__)


def _active_users(session, team_id: str | None, first_day, last_day, *, inclusive: bool):
    stmt = select(UserActivityRollup.user_id).distinct().where(
        UserActivityRollup.date >= first_day,
    )
    if inclusive:
        stmt = stmt.where(UserActivityRollup.date <= last_day)
    else:
        stmt = stmt.where(UserActivityRollup.date < last_day)
    if team_id is not None:
        stmt = stmt.where(UserActivityRollup.team_id == team_id)
    return set(session.scalars(stmt))


def retention_rate(
    engine: Engine,
    team_id: str | None = None,
    window_days: int = 7,
    *,
    now: datetime | None = None,
) -> float:
    """Percentage of the previous window's active users who came back.

    Raises
    ------
    ValueError
        If *window_days* is not a positive integer.
    """
    if isinstance(window_days, bool) or not isinstance(window_days, int) or window_days <= 0:
        raise ValueError(f"window_days must be a positive integer, got {window_days!r}")

    today = day_bucket(now or utc_now())
    window_start = today - timedelta(days=window_days)
    cohort_start = window_start - timedelta(days=window_days)

    with get_session(engine) as session:
        cohort = _active_users(session, team_id, cohort_start, window_start, inclusive=False)
        if not cohort:
            return 0.0
        current = _active_users(session, team_id, window_start, today, inclusive=True)

    returned = cohort & current
    rate = percentage(len(returned), len(cohort))
    logger.debug(
        "Retention %dd team=%s: %d/%d = %.1f%%",
        window_days, team_id, len(returned), len(cohort), rate,
    )
    return rate


def retention_summary(
    engine: Engine,
    team_id: str | None = None,
    *,
    now: datetime | None = None,
) -> dict[str, float]:
    """Daily / weekly / monthly retention in one dict."""
    return {
        name: retention_rate(engine, team_id, days, now=now)
        for name, days in RETENTION_WINDOWS.items()
    }
