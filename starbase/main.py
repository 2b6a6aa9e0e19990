"""FastAPI application entry point."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from starbase.api.health import router as health_router
from starbase.api.sync import router as sync_router
from starbase.api.vcs import router as vcs_router
from starbase.config import APP_VERSION, Settings
from starbase.database import create_engine
from starbase.exceptions import InternalServerError, NotFoundError, SyncInProgressError
from starbase.models.base import Base
from starbase.providers.errors import (
    ProviderAuthError,
    ProviderError,
    ProviderNetworkError,
    ProviderNotFoundError,
    ProviderRateLimitError,
)
from starbase.services.remote_git_service import RemoteGitService

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger(__name__)

_PROVIDER_STATUS: dict[type[ProviderError], int] = {
    ProviderAuthError: 401,
    ProviderRateLimitError: 429,
    ProviderNotFoundError: 404,
    ProviderNetworkError: 502,
}


def _error_response(
    request: Request,
    exc: Exception,
    status_code: int,
    content: dict[str, Any],
    *,
    level: int = logging.ERROR,
) -> JSONResponse:
    logger.log(
        level,
        "%s in %s %s: %s",
        type(exc).__name__,
        request.method,
        request.url.path,
        exc,
        exc_info=exc if level >= logging.ERROR else None,
    )
    return JSONResponse(status_code=status_code, content=content)


def _register_exception_handlers(app: FastAPI) -> None:
    """Map domain and provider errors to HTTP responses."""

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {
                "field": str(err["loc"][-1]) if err.get("loc") else "unknown",
                "message": err.get("msg", "Invalid value"),
            }
            for err in exc.errors()
        ]
        return _error_response(request, exc, 422, {"detail": errors}, level=logging.WARNING)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error_response(
            request, exc, 404, {"detail": str(exc) or "Not found"}, level=logging.INFO
        )

    @app.exception_handler(SyncInProgressError)
    async def sync_in_progress_handler(
        request: Request, exc: SyncInProgressError
    ) -> JSONResponse:
        return _error_response(request, exc, 409, {"detail": str(exc)}, level=logging.INFO)

    @app.exception_handler(ProviderError)
    async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
        status_code = next(
            (code for cls, code in _PROVIDER_STATUS.items() if isinstance(exc, cls)), 502
        )
        level = logging.WARNING if status_code < 500 else logging.ERROR
        content = {"detail": str(exc) or "Remote provider error", "code": exc.code}
        return _error_response(request, exc, status_code, content, level=level)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return _error_response(
            request, exc, 422, {"detail": str(exc) or "Invalid value"}, level=logging.WARNING
        )

    @app.exception_handler(InternalServerError)
    async def internal_server_error_handler(
        request: Request, exc: InternalServerError
    ) -> JSONResponse:
        return _error_response(request, exc, 500, {"detail": "Internal server error"})

    @app.exception_handler(OperationalError)
    async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
        return _error_response(request, exc, 503, {"detail": "Database temporarily unavailable"})


def _configure_logging(debug: bool) -> None:
    """Configure application logging."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug else logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan: database, schema and the sync service."""
    settings: Settings = app.state.settings
    settings.validate_runtime_security()
    _configure_logging(settings.debug)
    logger.info("Starting Starbase VCS (debug=%s)", settings.debug)

    try:
        engine, session_factory = create_engine(settings)
        app.state.engine = engine
        app.state.session_factory = session_factory
    except Exception as exc:
        logger.critical(
            "Failed to initialize database: %s. Check database path and permissions.", exc
        )
        raise

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as exc:
        logger.critical("Failed to create database schema: %s.", exc)
        raise

    try:
        settings.git_repos_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.critical(
            "Failed to create repository directory at %s: %s.", settings.git_repos_dir, exc
        )
        raise

    remote_git_service = RemoteGitService(session_factory, settings)
    app.state.remote_git_service = remote_git_service

    yield

    try:
        await remote_git_service.close()
    except Exception as exc:
        logger.error("Error while closing provider clients: %s", exc, exc_info=True)

    try:
        await engine.dispose()
    except Exception as exc:
        logger.error("Error during engine disposal: %s", exc, exc_info=True)

    logger.info("Starbase VCS stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    docs_enabled = settings.debug or settings.expose_docs

    app = FastAPI(
        title="Starbase VCS",
        description="Version control and remote git sync for BPMN/DMN projects",
        version=APP_VERSION,
        lifespan=lifespan,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    app.state.settings = settings

    cors_origins = (
        settings.cors_origins
        if settings.cors_origins
        else (["http://localhost:5173", "http://localhost:8000"] if settings.debug else [])
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(vcs_router)
    app.include_router(sync_router)

    _register_exception_handlers(app)
    return app


app = create_app()


def cli_entry() -> None:
    """CLI entry point for running the server."""
    import uvicorn

    settings: Settings = app.state.settings
    uvicorn.run(
        "starbase.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
