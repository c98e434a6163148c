"""Scheduler configuration using SQLAlchemy job store."""

import asyncio
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, EVENT_JOB_MISSED
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from .config.logging import get_logger
from .config.settings import get_settings
from .exceptions import EvaluationInProgressError
from .ormdb.database import get_database_url

logger = get_logger(__name__)

ALERT_EVALUATION_JOB_ID = "alert_evaluation"


def create_scheduler() -> BackgroundScheduler:
    """
    Create and configure a BackgroundScheduler with SQLAlchemy job store.

    Returns:
        Configured BackgroundScheduler instance
    """
    settings = get_settings()

    # Configure job store using the same database as our application
    jobstores = {
        "default": SQLAlchemyJobStore(url=get_database_url(), tablename="apscheduler_jobs")
    }

    executors = {"default": ThreadPoolExecutor(max_workers=settings.scheduler_max_workers)}

    job_defaults = {
        "coalesce": True,  # Collapse a backlog of missed ticks into one pass
        "max_instances": 1,
        "misfire_grace_time": 30,
    }

    scheduler = BackgroundScheduler(
        jobstores=jobstores,
        executors=executors,
        job_defaults=job_defaults,
        timezone="UTC",
    )

    scheduler.add_listener(job_executed_listener, EVENT_JOB_EXECUTED)
    scheduler.add_listener(job_error_listener, EVENT_JOB_ERROR)
    scheduler.add_listener(job_missed_listener, EVENT_JOB_MISSED)

    return scheduler


def job_executed_listener(event):
    """Log successful job executions."""
    logger.info(
        "Scheduled job executed",
        job_id=event.job_id,
        scheduled_run_time=str(event.scheduled_run_time),
    )


def job_error_listener(event):
    """Log job execution errors."""
    logger.error(
        "Scheduled job crashed",
        job_id=event.job_id,
        error=str(event.exception),
        traceback=event.traceback,
    )


def job_missed_listener(event):
    logger.warning(
        "Scheduled job missed its run time",
        job_id=event.job_id,
        scheduled_run_time=str(event.scheduled_run_time),
    )


def get_global_scheduler() -> BackgroundScheduler:
    """
    Get or create the global scheduler instance.

    Returns:
        Global BackgroundScheduler instance
    """
    if not hasattr(get_global_scheduler, "_scheduler"):
        get_global_scheduler._scheduler = create_scheduler()

    return get_global_scheduler._scheduler


def start_scheduler():
    """Start the global scheduler."""
    scheduler = get_global_scheduler()
    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started with SQLAlchemy job store")


def shutdown_scheduler():
    """Shutdown the global scheduler."""
    scheduler = get_global_scheduler()
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Scheduler shutdown complete")


def add_alert_evaluation_job(cron_expression: Optional[str] = None):
    """
    Register the recurring evaluation pass.

    Args:
        cron_expression: Five-field crontab (default: ALERT_CRON setting)
    """
    cron_expression = cron_expression or get_settings().alert_cron
    scheduler = get_global_scheduler()

    try:
        scheduler.remove_job(ALERT_EVALUATION_JOB_ID)
    except JobLookupError:
        pass

    scheduler.add_job(
        func="pipewatch.scheduler:run_scheduled_evaluation",
        trigger=CronTrigger.from_crontab(cron_expression, timezone="UTC"),
        id=ALERT_EVALUATION_JOB_ID,
        name="CI Alert Evaluation",
        replace_existing=True,
    )

    logger.info("Added alert evaluation job", cron=cron_expression)


class SchedulerState(Enum):
    """Run state of the evaluation subsystem."""

    IDLE = "idle"
    RUNNING = "running"


class EvaluationRunner:
    """
    Guards evaluation passes with an explicit Idle/Running state.

    Scheduled passes run on the scheduler's worker thread and manual passes
    on the API event loop, so the state is protected by a thread lock.
    """

    def __init__(self, service_factory=None):
        self._service_factory = service_factory
        self._lock = threading.Lock()
        self._state = SchedulerState.IDLE
        self._running_since: Optional[datetime] = None
        self._running_trigger: Optional[str] = None
        self.last_summary = None
        self.logger = logger.bind(component="evaluation_runner")

    @property
    def state(self) -> SchedulerState:
        return self._state

    def _service(self):
        if self._service_factory is not None:
            return self._service_factory()
        from .services.evaluation import AlertEvaluationService

        return AlertEvaluationService()

    def _enter(self, trigger: str) -> bool:
        with self._lock:
            if self._state is SchedulerState.RUNNING:
                return False
            self._state = SchedulerState.RUNNING
            self._running_since = datetime.now(timezone.utc)
            self._running_trigger = trigger
            return True

    def _exit(self) -> None:
        with self._lock:
            self._state = SchedulerState.IDLE
            self._running_since = None
            self._running_trigger = None

    async def run(self, trigger: str = "manual", raise_if_busy: bool = True):
        """
        Run one pass unless another is in progress.

        Returns:
            EvaluationPassSummary, or None when a busy scheduled tick was skipped

        Raises:
            EvaluationInProgressError: when busy and ``raise_if_busy`` is set
        """
        if not self._enter(trigger):
            running_since = self._running_since.isoformat() if self._running_since else None
            if raise_if_busy:
                raise EvaluationInProgressError(running_since=running_since)
            self.logger.warning(
                "Evaluation pass already running; skipping tick",
                trigger=trigger,
                running_since=running_since,
                running_trigger=self._running_trigger,
            )
            return None

        try:
            summary = await self._service().run_pass(trigger=trigger)
            self.last_summary = summary
            return summary
        finally:
            self._exit()

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "state": self._state.value,
                "running_since": (
                    self._running_since.isoformat() if self._running_since else None
                ),
                "trigger": self._running_trigger,
                "last_pass_finished_at": (
                    self.last_summary.finished_at.isoformat()
                    if self.last_summary and self.last_summary.finished_at
                    else None
                ),
            }


def get_evaluation_runner() -> EvaluationRunner:
    """Get or create the process-wide evaluation runner."""
    if not hasattr(get_evaluation_runner, "_runner"):
        get_evaluation_runner._runner = EvaluationRunner()

    return get_evaluation_runner._runner


def run_scheduled_evaluation():
    """Job entry point executed on a scheduler worker thread."""
    if not get_settings().alerts_enabled:
        logger.info("Alert evaluation disabled; skipping scheduled pass")
        return None

    return asyncio.run(
        get_evaluation_runner().run(trigger="scheduled", raise_if_busy=False)
    )


async def trigger_evaluation_now():
    """
    Run one pass on demand.

    Raises:
        EvaluationInProgressError: when a pass is already running
    """
    return await get_evaluation_runner().run(trigger="manual", raise_if_busy=True)


def list_scheduled_jobs() -> List[Dict[str, Any]]:
    """List all currently scheduled jobs."""
    scheduler = get_global_scheduler()
    jobs = []
    for job in scheduler.get_jobs():
        # Pending jobs have no next_run_time until the scheduler starts
        next_run_time = getattr(job, "next_run_time", None)
        jobs.append(
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": next_run_time.isoformat() if next_run_time else None,
            }
        )
    return jobs
