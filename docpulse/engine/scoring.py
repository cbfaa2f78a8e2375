"""
docpulse.engine.scoring — Engagement & Trending Scores
=======================================================

Pure functions over stat snapshots.  No DB I/O, no clock reads unless
*now* is omitted.

- Engagement weights escalate with commitment: a clone costs the reader
  more than a share, a share more than a like, a like more than a view.
- Trending drops clones and multiplies by a daily decay with a 10% floor,
  so old-but-viral content never scores exactly zero.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from docpulse.engine.periods import ensure_utc, utc_now

VIEW_WEIGHT = 1
LIKE_WEIGHT = 2
SHARE_WEIGHT = 3
CLONE_WEIGHT = 5

DECAY_HOURS = 24.0
DECAY_FLOOR = 0.1


def _require_non_negative(**counts: float) -> None:
    for name, value in counts.items():
        if value < 0:
            raise ValueError(f"{name} must be >= 0, got {value}")


def engagement_score(
    views: int = 0, likes: int = 0, shares: int = 0, clones: int = 0,
) -> int:
    """Weighted depth-of-interaction score: ``v + 2l + 3s + 5c``."""
    _require_non_negative(views=views, likes=likes, shares=shares, clones=clones)
    return (
        views * VIEW_WEIGHT
        + likes * LIKE_WEIGHT
        + shares * SHARE_WEIGHT
        + clones * CLONE_WEIGHT
    )


def raw_trending_engagement(views: int = 0, likes: int = 0, shares: int = 0) -> int:
    """Engagement without clones: the virality signal trending ranks on."""
    _require_non_negative(views=views, likes=likes, shares=shares)
    return views * VIEW_WEIGHT + likes * LIKE_WEIGHT + shares * SHARE_WEIGHT


def decay_factor(hours_ago: float) -> float:
    """``max(0.1, 1 / (1 + hours/24))``; negative ages count as brand new."""
    hours_ago = max(hours_ago, 0.0)
    return max(DECAY_FLOOR, 1.0 / (1.0 + hours_ago / DECAY_HOURS))


def trending_score(
    views: int,
    likes: int,
    shares: int,
    created_at: datetime,
    now: datetime | None = None,
) -> float:
    """Recency-weighted engagement (clones excluded)."""
    raw = raw_trending_engagement(views, likes, shares)
    age = ensure_utc(now or utc_now()) - ensure_utc(created_at)
    return raw * decay_factor(age / timedelta(hours=1))


def percent_change(current: float, previous: float) -> float:
    """``100 * (current - previous) / previous``, or 0 when there is no base."""
    if previous <= 0:
        return 0.0
    return 100.0 * (current - previous) / previous


def percentage(part: float, whole: float) -> float:
    """``100 * part / whole``, or 0 for an empty denominator."""
    if whole <= 0:
        return 0.0
    return 100.0 * part / whole


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class DocumentSnapshot:
    """Point-in-time engagement counters for one document."""

    document_id: str
    created_at: datetime
    views: int = 0
    likes: int = 0
    shares: int = 0
    clones: int = 0

    @property
    def engagement(self) -> int:
        return engagement_score(self.views, self.likes, self.shares, self.clones)

    def trending(self, now: datetime | None = None) -> float:
        return trending_score(self.views, self.likes, self.shares, self.created_at, now)


def rank_trending(
    snapshots: Iterable[DocumentSnapshot],
    now: datetime | None = None,
    *,
    limit: int = 20,
    max_age_days: int = 7,
    min_engagement: int = 10,
) -> list[tuple[DocumentSnapshot, float]]:
    """Pick the trending documents.

    A document qualifies when it was created within *max_age_days* and its
    clone-free engagement exceeds *min_engagement*.  Qualifiers are ordered
    by trending score (ties by document id) and cut to *limit*.
    """
    now = ensure_utc(now or utc_now())
    oldest = now - timedelta(days=max_age_days)

    scored: list[tuple[DocumentSnapshot, float]] = []
    for snap in snapshots:
        if ensure_utc(snap.created_at) < oldest:
            continue
        if raw_trending_engagement(snap.views, snap.likes, snap.shares) <= min_engagement:
            continue
        scored.append((snap, snap.trending(now)))

    scored.sort(key=lambda pair: (-pair[1], pair[0].document_id))
    return scored[:limit]
