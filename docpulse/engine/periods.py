"""
docpulse.engine.periods — Time Ranges, Report Windows & Bucketing
==================================================================

All rollups are bucketed by calendar day in UTC.  Reports are anchored on
"today" (the UTC date of *now*) and look back a fixed number of days.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta

from docpulse.constants import MONTH_DAYS, WEEK_DAYS, YEAR_DAYS

logger = logging.getLogger(__name__)


class TimeRange(enum.StrEnum):
    """Accepted report time ranges."""
    LAST_7_DAYS = "7d"
    LAST_30_DAYS = "30d"
    LAST_90_DAYS = "90d"

    @property
    def days(self) -> int:
        return int(self.value.rstrip("d"))


def parse_time_range(
    value: str | TimeRange | None,
    default: TimeRange = TimeRange.LAST_30_DAYS,
) -> TimeRange:
    """Return the :class:`TimeRange` for *value*, or *default* if unrecognized.

    Unknown values never raise; dashboards prefer a sensible window over an
    error page.
    """
    if isinstance(value, TimeRange):
        return value
    if value is None:
        return default
    try:
        return TimeRange(value.strip().lower())
    except ValueError:
        logger.debug("Unknown time range %r; falling back to %s", value, default.value)
        return default


# ---------------------------------------------------------------------------
# UTC helpers
# ---------------------------------------------------------------------------
def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC.

    SQLite hands timestamps back naive; everything written is UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def day_bucket(value: datetime) -> date:
    """The UTC calendar day an instant falls in."""
    return ensure_utc(value).date()


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=UTC)


def week_start(day: date) -> date:
    """Monday of the ISO week containing *day*."""
    return day - timedelta(days=day.weekday())


def day_label(day: date) -> str:
    return day.isoformat()


def week_label(day: date) -> str:
    return week_start(day).isoformat()


def month_label(day: date) -> str:
    return day.strftime("%Y-%m")


# ---------------------------------------------------------------------------
# ReportWindow
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ReportWindow:
    """Date anchors shared by every report.

    ``start`` is the beginning of the requested time range; the other
    anchors are fixed look-backs used for "this week", "this month",
    growth comparisons and the yearly trend.
    """

    today: date
    start: date
    week_ago: date
    month_ago: date
    two_months_ago: date
    year_ago: date

    @classmethod
    def for_range(
        cls,
        time_range: TimeRange = TimeRange.LAST_30_DAYS,
        now: datetime | None = None,
    ) -> ReportWindow:
        today = day_bucket(now or utc_now())
        return cls(
            today=today,
            start=today - timedelta(days=time_range.days),
            week_ago=today - timedelta(days=WEEK_DAYS),
            month_ago=today - timedelta(days=MONTH_DAYS),
            two_months_ago=today - timedelta(days=2 * MONTH_DAYS),
            year_ago=today - timedelta(days=YEAR_DAYS),
        )
