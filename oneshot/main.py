"""
oneshot - Main Application
FastAPI application for ephemeral one-shot file sharing.
"""
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import ClientDisconnect

from oneshot.api.v1 import api_router
from oneshot.core.config import Settings, get_settings
from oneshot.core.context import ServiceContext, build_context, get_context
from oneshot.core.logging import configure_logging
from oneshot.core.rate_limit import enforce_rate_limit
from oneshot.core.units import format_bytes, format_duration
from oneshot.db import check_db_connection, init_db
from oneshot.metrics import app_info, app_uptime_seconds
from oneshot.middleware import MetricsMiddleware
from oneshot.schemas import HealthResponse, MessageResponse
from oneshot.storage import LifecycleError, ObjectStore

logger = logging.getLogger(__name__)

RECLAIM_JOB_ID = "storage_reclaimer"


def start_reclaimer(context: ServiceContext) -> BackgroundScheduler:
    """
    Schedule periodic reclaimer runs in a background thread.
    """
    settings = context.settings
    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        context.reclaimer.run_scheduled,
        trigger=IntervalTrigger(seconds=settings.RECLAIM_INTERVAL_SECONDS),
        id=RECLAIM_JOB_ID,
        name="Reclaim expired and orphaned files",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Reclaimer scheduled every {settings.RECLAIM_INTERVAL_SECONDS}s")
    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    """
    context: ServiceContext = app.state.context
    settings = context.settings

    # Startup
    logger.info(f"Starting {settings.APP_NAME}...")
    logger.info(f"Version: {settings.APP_VERSION}")
    logger.info(f"Environment: {settings.HOST}:{settings.PORT}")

    app_info.info({
        "version": settings.APP_VERSION,
        "storage_backend": settings.STORAGE_BACKEND,
    })

    if not settings.rate_limit_active:
        logger.warning(f"Rate limiting is {rate_limit_description(settings)}")

    init_db(context.db_engine)
    if check_db_connection(context.db_engine):
        logger.info("Database connection: OK")
    else:
        logger.error("Database connection: FAILED")

    scheduler = None
    if settings.RECLAIMER_ENABLED:
        # No upload can be in flight yet, so orphans are removed regardless of age.
        await asyncio.to_thread(context.reclaimer.run_scheduled, True)
        scheduler = start_reclaimer(context)

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.APP_NAME}...")
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    context.close()


def rate_limit_description(settings: Settings) -> str:
    """Per-client request limit as shown on the root endpoint."""
    if settings.rate_limit_active:
        return f"{settings.RATE_LIMIT_PER_MINUTE} requests/minute per client"
    if not settings.RATE_LIMIT_ENABLED:
        return "disabled (RATE_LIMIT_ENABLED=false)"
    return "disabled (set REDIS_URL to enable)"


def _wants_json(request: Request) -> bool:
    return request.url.path.startswith("/api")


def _error_response(request: Request, status_code: int, message: str, headers=None) -> Response:
    if _wants_json(request):
        return JSONResponse(
            status_code=status_code,
            content=MessageResponse(success=False, message=message).model_dump(),
            headers=headers,
        )
    return PlainTextResponse(message, status_code=status_code, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Map lifecycle errors and framework errors to HTTP responses."""

    @app.exception_handler(LifecycleError)
    async def lifecycle_exception_handler(request: Request, exc: LifecycleError):
        """Handle lifecycle errors (413, 404, 410, 500)."""
        message = exc.message
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc)
            # Internal details stay in the log.
            message = exc.default_message
        return _error_response(request, exc.status_code, message)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions (401, 404, 429, ...)."""
        return JSONResponse(
            status_code=exc.status_code,
            content=MessageResponse(success=False, message=str(exc.detail)).model_dump(),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors."""
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "success": False,
                "message": "Validation error",
                "details": exc.errors(),
            },
        )

    @app.exception_handler(ClientDisconnect)
    async def client_disconnect_handler(request: Request, exc: ClientDisconnect):
        """The client went away mid-upload; partial bytes were already removed."""
        logger.info(f"Client disconnected during {request.method} {request.url.path}")
        return _error_response(request, status.HTTP_400_BAD_REQUEST, "Upload interrupted")

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle general exceptions."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred",
        )


def register_service_routes(app: FastAPI) -> None:
    """Root, health and metrics endpoints."""

    @app.get("/", tags=["root"])
    def root(request: Request, context: ServiceContext = Depends(get_context)):
        """
        Root endpoint.
        Provides service information and usage examples.
        """
        settings = context.settings
        base = (settings.PUBLIC_BASE_URL or str(request.base_url)).rstrip("/")
        auth_header = ' -H "X-API-Key: YOUR_API_KEY"' if settings.api_key_required else ""

        return {
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "max_upload_size": format_bytes(settings.max_upload_bytes),
            "max_downloads": settings.MAX_DOWNLOADS,
            "file_expiry": format_duration(settings.file_expiry),
            "requires_api_key": settings.api_key_required,
            "rate_limit": rate_limit_description(settings),
            "usage": {
                "upload": f"curl{auth_header} -T file.txt {base}/",
                "upload_form": f"curl{auth_header} -F file=@file.txt {base}/api/upload",
                "download": f"curl -OJ {base}/d/<id>.<ext>",
            },
            "health": "/health",
        }

    @app.get("/health", tags=["health"], response_model=HealthResponse)
    def health_check(context: ServiceContext = Depends(get_context)):
        """
        Health check endpoint.
        Reports database and object store status.
        """
        settings = context.settings
        db_status = "healthy" if check_db_connection(context.db_engine) else "unhealthy"
        storage_status = "healthy" if context.store.check_health() else "unhealthy"
        overall = "healthy" if db_status == storage_status == "healthy" else "degraded"

        return HealthResponse(
            status=overall,
            service=settings.APP_NAME,
            version=settings.APP_VERSION,
            database=db_status,
            storage=storage_status,
        )

    @app.get("/metrics", tags=["monitoring"])
    def metrics(request: Request):
        """
        Prometheus metrics endpoint.

        Returns metrics in Prometheus text format for scraping.
        This endpoint is excluded from metrics collection to avoid feedback loops.
        """
        app_uptime_seconds.set(time.time() - request.app.state.started_at)
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def create_app(settings: Optional[Settings] = None, store: Optional[ObjectStore] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings (defaults to get_settings())
        store: Object store override (defaults to STORAGE_BACKEND)

    Returns:
        FastAPI application with its ServiceContext on app.state.context
    """
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Ephemeral file sharing: upload a file, get a link that "
                    "stops working after a number of downloads or a time limit.",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.context = build_context(settings, store=store)
    app.state.started_at = time.time()

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add Prometheus Metrics Middleware
    app.add_middleware(MetricsMiddleware)

    register_exception_handlers(app)
    register_service_routes(app)
    app.include_router(api_router, dependencies=[Depends(enforce_rate_limit)])

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "oneshot.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
