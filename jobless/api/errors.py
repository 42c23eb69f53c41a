"""
jobless.api.errors — Exception handlers
========================================

Maps domain errors raised by the services onto JSON responses so routes
never have to translate them by hand.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from jobless.errors import RewardsError

logger = logging.getLogger(__name__)


def setup_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RewardsError)
    async def rewards_error_handler(request: Request, exc: RewardsError) -> JSONResponse:
        if exc.status_code >= 422:
            logger.warning("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
