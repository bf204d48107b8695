"""FastAPI application: upload workbooks, ask questions, compare files.

Run with ``uvicorn sheet_analyst.main:app`` from the ``backend`` directory.
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from contextlib import asynccontextmanager

from sheet_analyst.core.config import settings
from sheet_analyst.core.logging_setup import configure_logging

configure_logging(settings.LOG_DIR, settings.DEBUG)

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sheet_analyst.routes.data import router as data_router
from sheet_analyst.routes.health import router as health_router
from sheet_analyst.routes.query import router as query_router
from sheet_analyst.routes.upload import router as upload_router
from sheet_analyst.routes.utils import get_executor
from sheet_analyst.services.code_execution.sandbox_env import cleanup_stale_scripts

logger = logging.getLogger("main")

# Upload limit plus 1 MB of multipart framing
MAX_BODY_BYTES = (settings.MAX_UPLOAD_SIZE_MB + 1) * 1024 * 1024


@asynccontextmanager
async def lifespan(app: FastAPI):
    for directory in (settings.UPLOAD_DIR, settings.DATASET_DIR, settings.SCRIPT_DIR):
        os.makedirs(directory, exist_ok=True)

    try:
        cleanup_stale_scripts(settings.SCRIPT_DIR)
    except OSError as exc:
        logger.warning("Stale script cleanup failed (non-fatal): %s", exc)

    # Startup continues either way; /health keeps reporting the state
    executor = get_executor()
    if await executor.validate_environment():
        logger.info("Analysis interpreter ready: %s", executor.python_command)
    else:
        logger.warning(
            "Analysis interpreter %s is unusable (missing or without pandas/numpy); queries will fail",
            executor.python_command,
        )

    logger.info("Startup complete (environment=%s)", settings.ENVIRONMENT)
    yield
    logger.info("Shutting down")


app = FastAPI(lifespan=lifespan, title="Excel Data Analysis API", version="1.0.0")


@app.middleware("http")
async def reject_large_bodies(request: Request, call_next):
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > MAX_BODY_BYTES:
        logger.warning("Rejected %s %s: body of %s bytes", request.method, request.url.path, declared)
        return JSONResponse(status_code=413, content={"detail": "Request body too large"})
    return await call_next(request)


@app.middleware("http")
async def request_logging(request: Request, call_next):
    request_id = uuid.uuid4().hex[:8]
    request.state.request_id = request_id
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception as exc:
        logger.error(
            "%s %s failed with %s after %.2fs [%s]",
            request.method, request.url.path, type(exc).__name__, time.perf_counter() - started, request_id,
        )
        raise
    logger.info(
        "%s %s -> %s in %.2fs [%s]",
        request.method, request.url.path, response.status_code, time.perf_counter() - started, request_id,
    )
    response.headers["X-Request-ID"] = request_id
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials="*" not in settings.CORS_ORIGINS,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(HTTPException)
async def http_error(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    request_id = getattr(request.state, "request_id", "unknown")
    logger.exception("Unhandled %s on %s [%s]", type(exc).__name__, request.url.path, request_id)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "request_id": request_id},
    )


for _router, _tag in (
    (health_router, "health"),
    (upload_router, "upload"),
    (data_router, "data"),
    (query_router, "query"),
):
    app.include_router(_router, tags=[_tag])
