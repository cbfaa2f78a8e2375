"""
docpulse.api.deps — FastAPI dependency injection
=================================================
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from fastapi import Depends, Header, Query
from sqlalchemy import Engine

from docpulse.config import AnalyticsConfig, load_config
from docpulse.database.engine import create_db_engine
from docpulse.services.analytics_service import AnalyticsEngine

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> AnalyticsConfig:
    """Load ``$DOCPULSE_CONFIG`` (or ./config.yaml).

    An explicitly configured path must exist; the implicit default may be
    absent, in which case built-in defaults apply.
    """
    path = os.getenv("DOCPULSE_CONFIG")
    if path:
        return load_config(path)
    if Path(DEFAULT_CONFIG_PATH).exists():
        return load_config(DEFAULT_CONFIG_PATH)
    logger.info("No %s found; using default analytics config", DEFAULT_CONFIG_PATH)
    return AnalyticsConfig()


@lru_cache(maxsize=1)
def get_analytics() -> AnalyticsEngine:
    config = get_config()
    return AnalyticsEngine(get_engine(), config, directory=config.directory)


def get_team_id(
    x_team_id: Annotated[str | None, Header()] = None,
    team_id: Annotated[str | None, Query(alias="teamId")] = None,
) -> str | None:
    """Team from the ``X-Team-Id`` header, else the ``teamId`` query param."""
    return x_team_id or team_id or None


def get_actor_id(x_user_id: Annotated[str | None, Header()] = None) -> str | None:
    return x_user_id or None


Analytics = Annotated[AnalyticsEngine, Depends(get_analytics)]
TeamId = Annotated[str | None, Depends(get_team_id)]
ActorId = Annotated[str | None, Depends(get_actor_id)]
