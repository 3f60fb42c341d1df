"""
adcraft.api.app - FastAPI Application Factory
===============================================

Builds the HTTP surface around one AdCraft facade.

Request Flow:
    request ──> request_context middleware (requestId, locale, access log)
            ──> route handler ──> agent stage
            ──> AdCraftError?          → error envelope with the mapped status
            ──> RequestValidationError → 400 VALIDATION_ERROR
            ──> any other exception    → 500 INTERNAL_ERROR (logged with traceback)

Usage:
    $ uvicorn adcraft.api.app:create_app --factory
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Optional
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

from adcraft import __version__
from adcraft.api.envelope import error_response, status_for
from adcraft.api.messages import INTERNAL_ERROR, resolve_locale
from adcraft.api.routes import router
from adcraft.core.config import AdCraftConfig
from adcraft.core.enums import Locale
from adcraft.core.exceptions import AdCraftError
from adcraft.core.logging import configure_logging
from adcraft.facade import AdCraft

logger = structlog.get_logger()


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or f"req_{uuid4().hex[:12]}"


def _locale(request: Request) -> Locale:
    return resolve_locale(
        request.query_params.get("locale") or request.headers.get("accept-language")
    )


def create_app(
    adcraft: Optional[AdCraft] = None,
    config: Optional[AdCraftConfig] = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        adcraft: A pre-built facade (tests inject one with a mock provider).
        config: Configuration used when ``adcraft`` is not given.
    """
    adcraft = adcraft or AdCraft(config)
    configure_logging(adcraft.config.log_level, adcraft.config.json_logs)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("application_startup", environment=adcraft.config.environment)
        await adcraft.initialize()
        yield
        await adcraft.shutdown()
        logger.info("application_shutdown")

    app = FastAPI(
        title="AdCraft API",
        description="Three-stage agent pipeline for AI-generated product commercials",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.adcraft = adcraft

    # =========================================================================
    # Middleware
    # =========================================================================
    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or f"req_{uuid4().hex[:12]}"
        request.state.request_id = request_id
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start_time = time.time()
        logger.info("request_started", method=request.method, path=request.url.path)
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            process_time=f"{time.time() - start_time:.3f}s",
        )
        return response

    # =========================================================================
    # Exception Handlers
    # =========================================================================
    @app.exception_handler(AdCraftError)
    async def adcraft_error_handler(request: Request, exc: AdCraftError):
        status_code = status_for(exc.error_code)
        log = logger.error if status_code >= 500 else logger.warning
        log(
            "request_rejected",
            path=request.url.path,
            error_code=exc.error_code,
            error=exc.message,
            details=exc.details,
        )
        return error_response(exc.error_code, _request_id(request), _locale(request), exc.details)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(p) for p in e["loc"][1:]), "message": e["msg"]}
            for e in exc.errors()
        ]
        logger.warning("request_validation_failed", path=request.url.path, errors=errors)
        return error_response(
            "VALIDATION_ERROR", _request_id(request), _locale(request), {"errors": errors}
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            exc_type=type(exc).__name__,
        )
        return error_response(INTERNAL_ERROR, _request_id(request), _locale(request))

    app.include_router(router)
    return app
