# src/geoquest/api/app.py
"""
FastAPI application wiring.

This file creates the `FastAPI` instance, CORS policy, and error mapping.
Endpoints live in `geoquest.api.routes`; engine logic lives in the domain packages.
"""

from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from geoquest.core.errors import GeoQuestError
from geoquest.core.logging import configure_logging

from .routes import router

configure_logging()

logger = logging.getLogger(__name__)

app = FastAPI(title="GeoQuest API", version="0.1.0")

# CORS (dev-friendly): allow local frontends (e.g. http://localhost:5173) to call this API.
# Configure via env:
# - GEOQUEST_CORS_ORIGINS="http://localhost:5173,http://127.0.0.1:5173"
# - GEOQUEST_CORS_ALLOW_LOCAL=0 to disable the default localhost allowance
cors_origins = [s.strip() for s in os.getenv("GEOQUEST_CORS_ORIGINS", "").split(",") if s.strip()]
cors_allow_local = os.getenv("GEOQUEST_CORS_ALLOW_LOCAL", "1").strip().lower() in {"1", "true", "yes", "y"}
cors_origin_regex = os.getenv("GEOQUEST_CORS_ALLOW_ORIGIN_REGEX", "").strip() or (
    r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$" if cors_allow_local and not cors_origins else ""
)
if cors_origins or cors_origin_regex:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_origin_regex=cors_origin_regex or None,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(GeoQuestError)
async def handle_geoquest_error(request: Request, exc: GeoQuestError) -> JSONResponse:
    """Engine errors are user-correctable: report them as `{error}` with the matching status."""
    logger.info("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc)
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


app.include_router(router)
