"""
docpulse.constants — Shared Constants
======================================

Single source of truth for sentinels and report sizing defaults.
Import from here instead of duplicating in services and routes.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Rollup keys
# ---------------------------------------------------------------------------
# Stored in place of an absent team so the rollup key tuple stays total.
# SQL NULLs never compare equal, so a NULL team would defeat ON CONFLICT.
NO_TEAM = ""

DEFAULT_TEMPLATE_TYPE = "custom"


# ---------------------------------------------------------------------------
# Window lengths (days)
# ---------------------------------------------------------------------------
WEEK_DAYS = 7
MONTH_DAYS = 30
YEAR_DAYS = 365

# Retention windows reported on the engagement dashboard
RETENTION_WINDOWS: dict[str, int] = {
    "daily": 1,
    "weekly": 7,
    "monthly": 30,
}


# ---------------------------------------------------------------------------
# Report sizing defaults (overridable via config.yaml)
# ---------------------------------------------------------------------------
TOP_CONTRIBUTORS_LIMIT = 5
TOP_USERS_LIMIT = 10
TEAM_USAGE_LIMIT = 5
DASHBOARD_TEMPLATE_LIMIT = 10
OVERVIEW_TEMPLATE_LIMIT = 15

# Gallery trending rule: recent, above a minimum engagement, top N
TRENDING_LIMIT = 20
TRENDING_MAX_AGE_DAYS = 7
TRENDING_MIN_ENGAGEMENT = 10
