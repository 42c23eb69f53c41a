"""
jobless.api.main — FastAPI application entry point
===================================================

Run with::

    uvicorn jobless.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from jobless import __version__  # noqa: E402
from jobless.api.deps import get_engine  # noqa: E402
from jobless.api.errors import setup_error_handlers  # noqa: E402
from jobless.api.routes.admin import router as admin_router  # noqa: E402
from jobless.api.routes.badges import router as badges_router  # noqa: E402
from jobless.api.routes.engagements import router as engagements_router  # noqa: E402
from jobless.database.engine import init_db  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env.

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
    """Warm the DB engine and make sure the default catalogue exists."""
    engine = get_engine()
    init_db(engine)
    logger.info("Jobless rewards API started, engine ready (%s)", engine.url.database)
    yield
    logger.info("Jobless rewards API shutting down")


app = FastAPI(
    title="Jobless Rewards API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_error_handlers(app)

app.include_router(badges_router, prefix="/api")
app.include_router(engagements_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
