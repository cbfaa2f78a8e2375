"""
docpulse.config — YAML Configuration Loader
============================================

**Why this file exists:**
Report sizing and trending thresholds are product decisions that change
more often than code.  They live in ``config.yaml``; secrets and
infrastructure (``DATABASE_URL``) stay in the environment / ``.env``.

Every key is optional — a missing key falls back to the default in
:mod:`docpulse.constants`.

Usage::

    from docpulse.config import load_config

    cfg = load_config()               # reads ./config.yaml by default
    print(cfg.top_contributors_limit) # 5
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path

import yaml

from docpulse import constants
from docpulse.engine.periods import TimeRange
from docpulse.services.directory import StaticDirectory


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AnalyticsConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    default_time_range: TimeRange = TimeRange.LAST_30_DAYS

    # Leaderboard sizes
    top_contributors_limit: int = constants.TOP_CONTRIBUTORS_LIMIT
    top_users_limit: int = constants.TOP_USERS_LIMIT
    team_usage_limit: int = constants.TEAM_USAGE_LIMIT
    dashboard_template_limit: int = constants.DASHBOARD_TEMPLATE_LIMIT
    overview_template_limit: int = constants.OVERVIEW_TEMPLATE_LIMIT

    # Trending documents
    trending_limit: int = constants.TRENDING_LIMIT
    trending_max_age_days: int = constants.TRENDING_MAX_AGE_DAYS
    trending_min_engagement: int = constants.TRENDING_MIN_ENGAGEMENT

    # Known teams/users; enables display names and unknown-team 404s
    directory: StaticDirectory | None = None


def _parse_directory(raw: object) -> StaticDirectory:
    if not isinstance(raw, dict):
        raise ValueError(f"directory must be a mapping, got {raw!r}")
    sections: dict[str, dict[str, str]] = {}
    for name in ("teams", "users"):
        entries = raw.get(name) or {}
        if not isinstance(entries, dict):
            raise ValueError(f"directory.{name} must map ids to names, got {entries!r}")
        sections[name] = {str(k): str(v) for k, v in entries.items()}
    return StaticDirectory(**sections)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> AnalyticsConfig:
    """Read *path* and return an :class:`AnalyticsConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ValueError
        If a limit is not a positive integer or the time range is unknown.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    values: dict[str, object] = {}
    for f in fields(AnalyticsConfig):
        if f.name not in raw or f.name in ("default_time_range", "directory"):
            continue
        value = raw[f.name]
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValueError(f"{f.name} must be a positive integer, got {value!r}")
        values[f.name] = value

    if "default_time_range" in raw:
        try:
            values["default_time_range"] = TimeRange(str(raw["default_time_range"]))
        except ValueError:
            raise ValueError(
                f"default_time_range must be one of "
                f"{[r.value for r in TimeRange]}, got {raw['default_time_range']!r}"
            ) from None

    if raw.get("directory") is not None:
        values["directory"] = _parse_directory(raw["directory"])

    return AnalyticsConfig(**values)
