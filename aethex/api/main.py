"""
aethex.api.main — FastAPI application entry point
==================================================

Run with::

    uvicorn aethex.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from aethex.api.deps import get_engine  # noqa: E402
from aethex.api.routes.discord import router as discord_router  # noqa: E402
from aethex.api.routes.role_mappings import router as role_mappings_router  # noqa: E402

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
    """Startup/shutdown lifecycle — warm the DB engine."""
    engine = get_engine()
    logger.info("AeThex API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("AeThex API shutting down")


app = FastAPI(
    title="AeThex Discord API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(discord_router, prefix="/api")
app.include_router(role_mappings_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
