"""Health check endpoints for the pipewatch API."""

import time
from typing import Any, Dict

from fastapi import APIRouter

from .. import __version__
from ..config.logging import get_logger
from ..config.settings import get_settings
from ..ormdb.database import check_database_health
from ..scheduler import get_evaluation_runner, get_global_scheduler, list_scheduled_jobs
from ..services import NotificationService
from .models.responses import HealthResponse, HealthStatus

logger = get_logger(__name__)
router = APIRouter()

# Track application start time for uptime calculation
_app_start_time = time.time()


def check_scheduler_health() -> Dict[str, Any]:
    """Scheduler and evaluation runner state."""
    settings = get_settings()
    runner = get_evaluation_runner().status()

    if not settings.alerts_enabled:
        return {"status": "disabled", "runner": runner}

    try:
        scheduler = get_global_scheduler()
        running = scheduler.running
        jobs = list_scheduled_jobs() if running else []
    except Exception as e:
        logger.error("Scheduler health check failed", error=str(e), exc_info=True)
        return {"status": "unhealthy", "error": str(e), "runner": runner}

    return {
        "status": "healthy" if running else "degraded",
        "running": running,
        "cron": settings.alert_cron,
        "jobs": jobs,
        "runner": runner,
    }


def check_configuration_health() -> Dict[str, Any]:
    """Optional delivery configuration."""
    settings = get_settings()
    checks = {
        "smtp_configured": settings.smtp_configured(),
        "auth_token_configured": bool(settings.endpoint_auth_token),
    }
    return {
        "status": "healthy" if all(checks.values()) else "degraded",
        "checks": checks,
        "channels": NotificationService(settings=settings).get_channel_status(),
    }


@router.get("/health", response_model=HealthResponse, summary="Basic Health Check")
async def basic_health_check():
    """
    Perform a basic health check.

    Returns database connectivity, scheduler and runner state, delivery
    configuration and uptime.
    """
    uptime_seconds = time.time() - _app_start_time
    try:
        services = {
            "database": check_database_health(),
            "scheduler": check_scheduler_health(),
            "configuration": check_configuration_health(),
        }

        statuses = [service.get("status") for service in services.values()]
        if services["database"]["status"] != "healthy" or "unhealthy" in statuses:
            overall_status = "unhealthy"
        elif "degraded" in statuses:
            overall_status = "degraded"
        else:
            overall_status = "healthy"

        health_status = HealthStatus(
            status=overall_status,
            services=services,
            uptime_seconds=uptime_seconds,
            version=__version__,
        )
        logger.debug("Basic health check completed", status=overall_status)
        return HealthResponse(success=True, health=health_status)

    except Exception as e:
        logger.error("Health check failed", error=str(e), exc_info=True)

        health_status = HealthStatus(
            status="unhealthy",
            services={"error": {"status": "unhealthy", "error": str(e)}},
            uptime_seconds=uptime_seconds,
        )
        # The health endpoint itself succeeded
        return HealthResponse(success=True, health=health_status)


@router.get("/health/live", summary="Liveness Check")
async def liveness_check():
    """Lightweight check that the process can serve requests."""
    return {"status": "alive"}
