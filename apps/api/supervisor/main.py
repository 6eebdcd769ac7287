"""FastAPI application entry point for the QC supervisor."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from supervisor.api.v1.router import api_router
from supervisor.core.config import settings
from supervisor.core.deps import get_session_store
from supervisor.core.logging_config import generate_request_id, request_id_var, setup_logging
from supervisor.core.rate_limit import limiter
from supervisor.services.session_store import SessionNotFoundError, run_session_reaper

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure logging and run the idle-session reaper for the app's lifetime."""
    setup_logging(debug=settings.debug)
    logger.info(
        "Starting %s v%s (environment=%s, session_backend=%s)",
        settings.project_name,
        settings.version,
        settings.environment,
        settings.session_backend,
    )

    reaper = asyncio.create_task(
        run_session_reaper(
            get_session_store(),
            ttl_seconds=settings.session_ttl_seconds,
            interval_seconds=settings.session_reaper_interval_seconds,
        ),
        name="session-reaper",
    )
    try:
        yield
    finally:
        logger.info("Stopping session reaper")
        reaper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await reaper


def _init_sentry() -> None:
    if not settings.sentry_dsn:
        return
    import sentry_sdk

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        traces_sample_rate=0.1,
    )


def _add_middleware(app: FastAPI) -> None:
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]
    app.add_middleware(SlowAPIMiddleware)

    # Supervisor dashboard only; the voice transport calls server-to-server
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next: Any) -> Response:
        rid = request.headers.get("X-Request-ID") or generate_request_id()
        request_id_var.set(rid)
        response: Response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response


def _add_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(SessionNotFoundError)
    async def session_not_found_handler(_request: Request, exc: SessionNotFoundError) -> JSONResponse:
        logger.warning("Session not found: call_id=%s", exc.call_id)
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": str(exc)},
        )

    # Anything else the routes let escape; the turn endpoint never does
    @app.exception_handler(Exception)
    async def global_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    _init_sentry()

    app = FastAPI(
        title=settings.project_name,
        version=settings.version,
        description="Turn orchestration for the voice-first quality control supervisor.",
        openapi_url=f"{settings.api_v1_prefix}/openapi.json",
        docs_url=f"{settings.api_v1_prefix}/docs",
        redoc_url=None,
        lifespan=lifespan,
    )

    _add_middleware(app)
    _add_exception_handlers(app)
    app.include_router(api_router, prefix=settings.api_v1_prefix)

    @app.get("/")
    async def root() -> dict[str, Any]:
        """Service information and entry points."""
        prefix = settings.api_v1_prefix
        return {
            "name": settings.project_name,
            "version": settings.version,
            "docs": f"{prefix}/docs",
            "health": f"{prefix}/health",
            "pipeline": f"{prefix}/agent/pipeline",
            "voice_webhook": f"{prefix}/voice/webhook",
        }

    return app


app = create_app()
