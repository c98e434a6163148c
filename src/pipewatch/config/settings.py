"""Application settings and configuration management using Pydantic."""

import re
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from apscheduler.triggers.cron import CronTrigger
from pydantic import field_validator
from pydantic_settings import BaseSettings

DEFAULT_BLOCKED_DOMAINS = (
    "localhost,.local,.test,.invalid,.example,example.com,example.net,example.org"
)


class Settings(BaseSettings):
    """Main application settings combining all configuration sections."""

    # Environment and deployment
    environment: str = "development"
    debug: bool = False

    # Alert evaluation settings
    alerts_enabled: bool = True
    alert_cron: str = "*/2 * * * *"
    alert_dedup_window_minutes: int = 60
    scheduler_max_workers: int = 2

    # Provider settings
    provider_timeout_seconds: float = 30.0
    jenkins_build_limit: int = 20
    jenkins_deploy_job_regex: str = "deploy"
    github_api_url: str = "https://api.github.com"

    # Email (SMTP) settings
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_from: str = "alerts@cicd-dashboard.local"
    smtp_use_tls: bool = True
    smtp_timeout_seconds: float = 30.0
    email_blocked_domains: str = DEFAULT_BLOCKED_DOMAINS
    email_blocked_addresses: str = ""

    # Chat webhook settings
    webhook_timeout_seconds: float = 10.0

    # API settings
    endpoint_host: str = "0.0.0.0"
    endpoint_port: int = 8000
    endpoint_auth_token: Optional[str] = None
    api_reload: bool = False
    api_log_level: str = "INFO"

    # Database settings
    database_url: Optional[str] = None
    data_directory: str = "data"
    database_echo_sql: bool = False
    database_pool_pre_ping: bool = True
    database_pool_recycle: int = 3600

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "structured"  # 'structured' or 'plain'
    log_file_enabled: bool = True
    log_file_path: str = "data/pipewatch.log"
    log_max_file_size: str = "10MB"
    log_backup_count: int = 5

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",  # Ignore extra environment variables
    }

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment setting."""
        valid_environments = ["development", "testing", "production"]
        if v.lower() not in valid_environments:
            raise ValueError(f"Environment must be one of: {valid_environments}")
        return v.lower()

    @field_validator("alert_cron")
    @classmethod
    def validate_alert_cron(cls, v):
        """Validate that the schedule is a standard five-field crontab expression."""
        try:
            CronTrigger.from_crontab(v, timezone="UTC")
        except ValueError as e:
            raise ValueError(f"Invalid alert cron expression '{v}': {e}")
        return v.strip()

    @field_validator("alert_dedup_window_minutes")
    @classmethod
    def validate_dedup_window(cls, v):
        """Validate dedup window is reasonable."""
        if v < 1 or v > 10080:  # 1 minute to 7 days
            raise ValueError("Dedup window must be between 1 and 10080 minutes")
        return v

    @field_validator("jenkins_build_limit")
    @classmethod
    def validate_build_limit(cls, v):
        if v < 1 or v > 100:
            raise ValueError("Jenkins build limit must be between 1 and 100")
        return v

    @field_validator("jenkins_deploy_job_regex")
    @classmethod
    def validate_deploy_job_regex(cls, v):
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid deploy job pattern: {e}")
        return v

    @field_validator("endpoint_port", "smtp_port")
    @classmethod
    def validate_port(cls, v):
        """Validate port number is in valid range."""
        if v < 1 or v > 65535:
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator("log_level", "api_log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        """Validate log format."""
        valid_formats = ["structured", "plain"]
        if v.lower() not in valid_formats:
            raise ValueError(f"Log format must be one of: {valid_formats}")
        return v.lower()

    def get_database_url(self) -> str:
        """Get the complete database URL."""
        if self.database_url:
            return self.database_url

        # Default to SQLite in data directory
        db_dir = Path(self.data_directory)
        db_dir.mkdir(exist_ok=True)
        db_path = db_dir / "pipewatch.db"
        return f"sqlite:///{db_path}"

    def get_blocked_domains(self) -> List[str]:
        """Blocked recipient domains, lower-cased."""
        return _split_csv(self.email_blocked_domains)

    def get_blocked_addresses(self) -> List[str]:
        """Blocked recipient addresses, lower-cased."""
        return _split_csv(self.email_blocked_addresses)

    def smtp_configured(self) -> bool:
        return bool(self.smtp_host)

    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.environment == "testing"


def _split_csv(value: str) -> List[str]:
    return [item.strip().lower() for item in value.split(",") if item.strip()]


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application configuration instance
    """
    return Settings()
