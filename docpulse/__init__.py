"""
docpulse — Analytics Aggregation & Engagement Scoring for PRD Workspaces
========================================================================
Ingests product-usage events, keeps per-user / per-team / per-document /
per-template daily rollups up to date with atomic incremental merges, and
builds dashboard reports (productivity, trends, template usage, retention,
trending documents) on top of them.

Package layout::

    docpulse/
    ├── config.py          # YAML → typed AnalyticsConfig
    ├── constants.py       # Shared constants (sentinels, limits)
    ├── errors.py          # Exception hierarchy
    ├── logging_setup.py   # Process-wide logging format
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # Event log + rollup tables
    ├── engine/
    │   ├── events.py      # AnalyticsEvent + typed payloads
    │   ├── rollups.py     # Event kind → rollup delta dispatch (pure)
    │   ├── scoring.py     # Engagement / trending scores (pure)
    │   └── periods.py     # Time ranges, report windows, bucketing
    ├── services/
    │   ├── event_store.py          # Append-only event log
    │   ├── rollup_writer.py        # Atomic upsert-with-increment
    │   ├── retention_service.py    # Cohort retention
    │   ├── reporting_service.py    # Dashboard reports
    │   ├── reconciliation_service.py # Rollup drift repair
    │   ├── directory.py            # Team/user name lookup seam
    │   └── analytics_service.py    # AnalyticsEngine facade
    └── api/
        ├── deps.py        # Dependency injection (engine, config, AnalyticsEngine)
        ├── main.py        # FastAPI app
        └── routes/        # Analytics endpoints
"""

__version__ = "0.1.0"
