"""
docpulse.api.main — FastAPI application entry point
=====================================================

Run with::

    uvicorn docpulse.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from docpulse.api.deps import get_engine  # noqa: E402
from docpulse.api.routes.analytics import router as analytics_router  # noqa: E402
from docpulse.database.engine import init_db  # noqa: E402
from docpulse.logging_setup import configure_logging  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — configure logging, verify tables."""
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))

    engine = get_engine()
    init_db(engine)
    logger.info("docpulse API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("docpulse API shutting down")


app = FastAPI(
    title="docpulse Analytics API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(analytics_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
