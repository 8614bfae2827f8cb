"""FastAPI application factory.

Main entry point for the UniMedia plan store API.
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from unimedia import __version__
from unimedia.config.app_config import AppConfig, load_app_config
from unimedia.core.plans import (
    PlanConflictError,
    PlanNotFoundError,
    PlanStore,
    PlanStoreError,
    PlanValidationError,
)
from unimedia.web.routes import health_router, plans_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup/shutdown events."""
    config: AppConfig = app.state.config
    logger.info(
        "api_startup",
        store_backend=config.store.backend,
        origins=config.server.origins or ["*"],
    )
    yield


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _register_error_handlers(app: FastAPI) -> None:
    """Map domain errors to the API's JSON error bodies."""

    @app.exception_handler(PlanValidationError)
    async def _validation(request: Request, exc: PlanValidationError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(PlanNotFoundError)
    async def _not_found(request: Request, exc: PlanNotFoundError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, str(exc))

    @app.exception_handler(PlanConflictError)
    async def _conflict(request: Request, exc: PlanConflictError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"ok": False, "error": str(exc), "code": exc.code},
        )

    @app.exception_handler(PlanStoreError)
    async def _store(request: Request, exc: PlanStoreError) -> JSONResponse:
        logger.error("api_store_error", path=request.url.path, error=str(exc))
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, "Bad request")

    @app.exception_handler(StarletteHTTPException)
    async def _http(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("api_unhandled_error", path=request.url.path)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc) or "Internal error")


def create_app(
    store: PlanStore | None = None,
    config: AppConfig | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        store: PlanStore to serve; opened from config on first request if None
        config: Settings; loaded from config/unimedia.yaml and env if None

    Returns:
        Configured FastAPI app instance
    """
    config = config or load_app_config()

    app = FastAPI(
        title="UniMedia API",
        description="Shared study-plan store for the UniMedia grade tracker",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.plan_store = store

    # Empty origin list means any origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.origins or ["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return response

    _register_error_handlers(app)

    # Include routers
    app.include_router(health_router)
    app.include_router(plans_router)

    return app


def get_app() -> FastAPI:
    """App factory for `uvicorn --factory unimedia.web.api:get_app`."""
    return create_app()
