"""
pipewatch - Main application entry point.

Polls Jenkins and GitHub Actions integrations, evaluates alert definitions
against fresh run data and notifies via email or chat webhooks.
"""

import asyncio
import json
import sys

import uvicorn
from dotenv import load_dotenv

# Load environment variables first
load_dotenv()

from pipewatch.config.logging import get_logger
from pipewatch.config.settings import get_settings
from pipewatch.exceptions import EvaluationInProgressError
from pipewatch.scheduler import trigger_evaluation_now
from pipewatch.utils.config import initialize_application, validate_environment


def run_once() -> int:
    """Run a single evaluation pass and print its summary."""
    logger = get_logger(__name__)
    try:
        summary = asyncio.run(trigger_evaluation_now())
    except EvaluationInProgressError as e:
        logger.error("Evaluation already running", error=e.message)
        return 1

    print(json.dumps(summary.to_dict(), indent=2))
    return 0 if summary.failed == 0 else 1


def main() -> None:
    """Main application entry point."""
    initialize_application()

    logger = get_logger(__name__)
    logger.info("Starting pipewatch application")

    settings = get_settings()

    if "-once" in sys.argv:
        # One-shot pass, e.g. from an external cron
        sys.exit(run_once())

    if not validate_environment():
        logger.error("Environment validation failed")
        print("Please set ENDPOINT_AUTH_TOKEN before running the API server.")
        sys.exit(1)

    logger.info(
        "Starting API server",
        host=settings.endpoint_host,
        port=settings.endpoint_port,
        alerts_enabled=settings.alerts_enabled,
        cron=settings.alert_cron,
    )

    # The app lifespan starts and stops the evaluation scheduler
    try:
        uvicorn.run(
            "pipewatch.webapi.app:app",
            host=settings.endpoint_host,
            port=settings.endpoint_port,
            reload=settings.api_reload,
            log_level=settings.api_log_level.lower(),
        )
    except KeyboardInterrupt:
        logger.info("Received interrupt signal")
        print("\nShutting down...")


if __name__ == "__main__":
    main()
