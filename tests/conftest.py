"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

import pytest
from sqlalchemy import BigInteger, Engine, create_engine

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.ext.compiler import compiles

from docpulse.database.models import Base
from docpulse.engine.events import AnalyticsEvent
from docpulse.services.analytics_service import AnalyticsEngine


@compiles(PG_JSONB, "sqlite")
def _compile_jsonb_as_text(type_, compiler, **kw):
    return "TEXT"


@compiles(BigInteger, "sqlite")
def _compile_bigint_as_integer(type_, compiler, **kw):
    # INTEGER PRIMARY KEY is what gives SQLite autoincrement
    return "INTEGER"


# Wednesday; the ISO week starts Monday 2026-03-16
NOW = datetime(2026, 3, 18, 12, 0, tzinfo=UTC)


def make_sqlite_engine(path: Path) -> Engine:
    """File-backed SQLite engine with all docpulse tables.

    A file (not ``:memory:``) so several pooled connections and worker
    threads see the same database, as ``run_db`` fans out across threads.
    """
    engine = create_engine(
        f"sqlite:///{path}",
        echo=False,
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_engine(tmp_path: Path) -> Engine:
    engine = make_sqlite_engine(tmp_path / "docpulse.db")
    yield engine
    engine.dispose()


@pytest.fixture
def engine_factory(tmp_path: Path):
    """Build extra independent databases inside one test."""
    created: list[Engine] = []

    def _make(name: str) -> Engine:
        engine = make_sqlite_engine(tmp_path / f"{name}.db")
        created.append(engine)
        return engine

    yield _make
    for engine in created:
        engine.dispose()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_event() -> Callable[..., AnalyticsEvent]:
    """Factory: ``make_event("prd_viewed", document_id="D1")``."""

    def _make(kind: str, **kwargs) -> AnalyticsEvent:
        kwargs.setdefault("occurred_at", NOW)
        return AnalyticsEvent(kind=kind, **kwargs)

    return _make


@pytest.fixture
def analytics(db_engine: Engine) -> AnalyticsEngine:
    """AnalyticsEngine over a fresh database with a frozen clock."""
    return AnalyticsEngine(db_engine, clock=lambda: NOW)
