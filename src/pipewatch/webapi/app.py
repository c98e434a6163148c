"""FastAPI application exposing evaluation, notification and provider endpoints."""

import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config.logging import get_logger
from ..config.settings import get_settings
from ..ormdb.database import create_tables
from ..scheduler import (
    add_alert_evaluation_job,
    get_evaluation_runner,
    list_scheduled_jobs,
    shutdown_scheduler,
    start_scheduler,
)
from .auth import verify_auth_token
from .exceptions import setup_exception_handlers
from .health import router as health_router
from .models.responses import StatusResponse
from .routers import alerts_router, integrations_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and start the evaluation scheduler when enabled."""
    settings = get_settings()
    logger.info("Starting pipewatch API", environment=settings.environment)

    create_tables()

    scheduler_started = False
    if settings.alerts_enabled and app.state.start_scheduler:
        start_scheduler()
        add_alert_evaluation_job(settings.alert_cron)
        scheduler_started = True
    else:
        logger.info(
            "Alert scheduler not started",
            alerts_enabled=settings.alerts_enabled,
        )

    logger.info("pipewatch API started successfully")

    yield

    logger.info("Shutting down pipewatch API")
    if scheduler_started:
        try:
            shutdown_scheduler()
        except Exception as e:
            logger.error("Error shutting down scheduler", error=str(e), exc_info=True)
    logger.info("pipewatch API shutdown completed")


async def add_request_id_middleware(request: Request, call_next):
    """Add unique request ID to each request for tracking."""
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    # Every log line emitted while handling this request carries its id
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)

    logger.info(
        "Request started",
        request_id=request_id,
        method=request.method,
        path=request.url.path,
        remote_addr=request.client.host if request.client else None,
    )

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id

    logger.info(
        "Request completed",
        request_id=request_id,
        status_code=response.status_code,
        method=request.method,
        path=request.url.path,
    )

    return response


def create_app(start_scheduler_on_startup: bool = True) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="pipewatch",
        description="""
        CI pipeline alert evaluation and notification dispatch.

        * **Evaluation**: periodic and on-demand passes over active alerts
        * **Providers**: Jenkins and GitHub Actions targets, runs and logs
        * **Notifications**: email and chat webhook delivery with per-channel isolation
        * **History**: append-only record of every dispatch, used for dedup
        """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.start_scheduler = start_scheduler_on_startup

    app.middleware("http")(add_request_id_middleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_exception_handlers(app)

    app.include_router(health_router, prefix="/api/v1", tags=["Health & Status"])
    app.include_router(alerts_router, prefix="/api/v1", tags=["Alerts"])
    app.include_router(integrations_router, prefix="/api/v1", tags=["Integrations"])

    @app.get(
        "/api/v1/status",
        response_model=StatusResponse,
        summary="API Status",
        description="Scheduler jobs and evaluation runner state",
    )
    async def api_status(
        request: Request, token: str = Depends(verify_auth_token)
    ) -> StatusResponse:
        settings = get_settings()
        try:
            jobs = list_scheduled_jobs() if settings.alerts_enabled else []
        except Exception as e:
            logger.warning("Could not list scheduled jobs", error=str(e))
            jobs = []

        return StatusResponse.create(
            data={
                "api_version": __version__,
                "alerts_enabled": settings.alerts_enabled,
                "cron": settings.alert_cron,
                "jobs": jobs,
                "runner": get_evaluation_runner().status(),
            },
            request_id=request.state.request_id,
        )

    return app


app = create_app()
