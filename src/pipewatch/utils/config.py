"""Application bootstrap utilities."""

from pathlib import Path

from ..config.logging import get_logger, setup_logging
from ..config.settings import get_settings


def ensure_resources_directory() -> None:
    """Ensure the data directory and database tables exist."""
    logger = get_logger(__name__)

    settings = get_settings()
    resources_path = Path(settings.data_directory)
    resources_path.mkdir(parents=True, exist_ok=True)

    logger.info("Ensured data directory exists", path=str(resources_path))

    from ..ormdb.database import create_tables

    create_tables()
    logger.info("Ensured database tables exist")


def initialize_application() -> None:
    """Initialize application configuration, logging and storage."""
    settings = get_settings()

    setup_logging(
        level=settings.log_level,
        format_type=settings.log_format,
        file_enabled=settings.log_file_enabled,
        file_path=settings.log_file_path,
        max_file_size=settings.log_max_file_size,
        backup_count=settings.log_backup_count,
    )

    ensure_resources_directory()

    logger = get_logger(__name__)
    logger.info(
        "Application initialized successfully",
        environment=settings.environment,
        debug=settings.debug,
        data_dir=settings.data_directory,
        alerts_enabled=settings.alerts_enabled,
    )


def validate_environment() -> bool:
    """Warn about optional settings that limit functionality; fail only on hard errors."""
    logger = get_logger(__name__)
    settings = get_settings()

    if not settings.endpoint_auth_token:
        logger.error("ENDPOINT_AUTH_TOKEN is not set; the API would reject every request")
        return False

    if not settings.smtp_configured():
        logger.warning("SMTP_HOST is not set; email notifications will be skipped")

    return True
