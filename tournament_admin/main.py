"""FastAPI application entry point.

Tournament Admin API - prize distribution and settlement
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware

from tournament_admin import __version__
from tournament_admin.api import prizes
from tournament_admin.config import Settings, get_settings
from tournament_admin.logging_config import configure_logging, get_logger, start_request_context
from tournament_admin.middleware.sentry import init_sentry
from tournament_admin.services.ledger import LedgerService
from tournament_admin.services.notification import NotificationService
from tournament_admin.settlement.locks import LocalSettlementLock, RedisSettlementLock
from tournament_admin.settlement.orchestrator import SettlementOrchestrator
from tournament_admin.settlement.rules import SettlementDefaults
from tournament_admin.store.memory import MemoryDocumentStore
from tournament_admin.store.sql import SqlDocumentStore
from tournament_admin.utils.db import close_db, create_engine, create_session_factory, init_db
from tournament_admin.utils.errors import ErrorCode, SettlementError
from tournament_admin.utils.json_utils import ORJSONResponse
from tournament_admin.utils.redis_client import close_redis, get_redis_client, init_redis

logger = get_logger(__name__)

# API version prefix
API_V1_PREFIX = "/api/v1"


def create_error_response(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    trace_id: str | None = None,
) -> dict[str, Any]:
    """Create standardized error response."""
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        },
        "traceId": trace_id,
    }


def get_request_id(request: Request) -> str:
    """Get request ID from request state or headers."""
    if hasattr(request.state, "request_id"):
        return request.state.request_id
    return request.headers.get("X-Request-ID", str(uuid.uuid4()))


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add X-Request-ID to every response and bind it to the log context."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = datetime.now(timezone.utc)

        start_request_context(request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        duration = (datetime.now(timezone.utc) - start_time).total_seconds()
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration=round(duration, 3),
        )
        return response


# =============================================================================
# Lifespan Events
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the store, lock and orchestrator; release them on shutdown."""
    settings: Settings = app.state.settings
    logger.info("Starting application...")

    engine = None
    if settings.database_url:
        engine = create_engine(settings)
        await init_db(engine)
        store = SqlDocumentStore(
            create_session_factory(engine),
            max_batch_ops=settings.settlement_max_batch_ops,
        )
        logger.info("Database connection established")
    else:
        store = MemoryDocumentStore(max_batch_ops=settings.settlement_max_batch_ops)
        logger.warning("DATABASE_URL not set - using in-memory document store")

    if settings.redis_url:
        redis_instance = await init_redis(settings)
        lock = RedisSettlementLock(
            redis_instance,
            lock_timeout_ms=settings.settlement_lock_ttl_ms,
            acquire_timeout_ms=settings.settlement_lock_acquire_timeout_ms,
        )
        logger.info("Redis connection established")
    else:
        lock = LocalSettlementLock(
            acquire_timeout_ms=settings.settlement_lock_acquire_timeout_ms
        )
        logger.warning("REDIS_URL not set - using in-process settlement lock")

    orchestrator = SettlementOrchestrator(
        store,
        LedgerService(store, settings.default_currency),
        lock,
        NotificationService(store),
        defaults=SettlementDefaults.from_settings(settings),
        currency=settings.default_currency,
        max_batch_ops=settings.settlement_max_batch_ops,
    )

    app.state.store = store
    app.state.orchestrator = orchestrator

    yield

    # Shutdown
    logger.info("Shutting down application...")
    await orchestrator.drain_notifications()
    await lock.cleanup_all()
    await close_redis()
    await store.close()
    if engine is not None:
        await close_db(engine)
    logger.info("Application shutdown complete")


# =============================================================================
# Application Factory
# =============================================================================


def register_exception_handlers(app: FastAPI) -> None:
    settings: Settings = app.state.settings

    @app.exception_handler(SettlementError)
    async def settlement_error_handler(request: Request, exc: SettlementError) -> ORJSONResponse:
        """Handle settlement errors."""
        trace_id = get_request_id(request)
        log = logger.error if exc.status_code >= 500 else logger.warning
        log("settlement_error", code=exc.code, message=exc.message, trace_id=trace_id)

        return ORJSONResponse(
            status_code=exc.status_code,
            content=create_error_response(
                code=exc.code,
                message=exc.message,
                details=exc.details,
                trace_id=trace_id,
            ),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> ORJSONResponse:
        """Handle HTTP exceptions."""
        trace_id = get_request_id(request)
        if isinstance(exc.detail, dict) and "error" in exc.detail:
            content = dict(exc.detail)
            content["traceId"] = trace_id
        else:
            content = create_error_response(
                code="HTTP_ERROR",
                message=str(exc.detail),
                trace_id=trace_id,
            )
        return ORJSONResponse(
            status_code=exc.status_code,
            content=content,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle request body / query validation errors."""
        return ORJSONResponse(
            status_code=422,
            content=create_error_response(
                code=ErrorCode.INVALID_REQUEST.value,
                message="Request validation failed",
                details={"errors": jsonable_encoder(exc.errors())},
                trace_id=get_request_id(request),
            ),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
        """Handle unexpected exceptions."""
        trace_id = get_request_id(request)
        logger.error(
            "unexpected_error",
            error_type=type(exc).__name__,
            error_message=str(exc),
            trace_id=trace_id,
            exc_info=True,
        )
        # Don't expose internal error details in production
        message = "Internal server error"
        if settings.app_debug:
            message = f"{type(exc).__name__}: {exc}"
        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=create_error_response(
                code=ErrorCode.INTERNAL_ERROR.value,
                message=message,
                trace_id=trace_id,
            ),
        )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create the FastAPI application."""
    settings = settings or get_settings()

    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.app_env == "production",
        app_env=settings.app_env,
    )

    sentry_enabled = init_sentry(
        dsn=settings.sentry_dsn,
        environment=settings.app_env,
        release=__version__,
        traces_sample_rate=settings.sentry_traces_sample_rate
        if settings.app_env == "production"
        else 0.0,
    )
    if sentry_enabled:
        logger.info("Sentry error tracking initialized")
    elif settings.app_env == "production":
        logger.warning("Sentry DSN not configured - error tracking disabled")

    app = FastAPI(
        title="Tournament Admin API",
        description="Tournament prize distribution and settlement",
        version=__version__,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
    )
    app.state.settings = settings

    app.add_middleware(RequestIDMiddleware)

    cors_origins = [origin.strip() for origin in settings.cors_origins.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    register_exception_handlers(app)

    @app.get("/health", tags=["Health"], summary="Health check endpoint")
    async def health_check(request: Request) -> dict[str, Any]:
        """Check store and Redis connectivity."""
        health_status: dict[str, Any] = {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
            "services": {
                "store": "unknown",
                "redis": "not configured",
            },
        }
        overall_healthy = True

        store = getattr(request.app.state, "store", None)
        if store is not None and await store.ping():
            health_status["services"]["store"] = "healthy"
        else:
            health_status["services"]["store"] = "unavailable"
            overall_healthy = False

        current_redis = get_redis_client()
        if current_redis is not None:
            try:
                await current_redis.ping()
                health_status["services"]["redis"] = "healthy"
            except RedisError as e:
                health_status["services"]["redis"] = f"unhealthy: {e}"
                overall_healthy = False
                logger.error("redis_health_check_failed", error=str(e))

        if not overall_healthy:
            health_status["status"] = "degraded"
        return health_status

    app.include_router(prizes.router, prefix=API_V1_PREFIX)
    return app


app = create_app()
