"""
FastAPI application entry point for the planning-poker backend.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pokerboard.config import get_settings
from pokerboard.errors import RepositoryError
from pokerboard.routes import router

logger = logging.getLogger(__name__)


async def repository_error_handler(request: Request, exc: RepositoryError):
    # The cause was already logged where the repository caught it.
    logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Pokerboard Backend (FastAPI)", version="0.1.0")
    app.add_exception_handler(RepositoryError, repository_error_handler)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
