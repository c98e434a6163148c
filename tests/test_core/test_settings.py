"""Tests for application settings."""

import pytest
from pydantic import ValidationError

from pipewatch.config.settings import Settings, get_settings


def test_defaults_from_test_environment():
    settings = get_settings()

    assert settings.is_testing()
    assert settings.alert_cron == "*/2 * * * *"
    assert settings.alert_dedup_window_minutes == 60
    assert not settings.smtp_configured()
    assert settings.get_database_url().endswith("pipewatch.db")


def test_invalid_cron_rejected():
    with pytest.raises(ValidationError):
        Settings(alert_cron="every two minutes")


def test_dedup_window_bounds():
    with pytest.raises(ValidationError):
        Settings(alert_dedup_window_minutes=0)


def test_invalid_deploy_job_regex_rejected():
    with pytest.raises(ValidationError):
        Settings(jenkins_deploy_job_regex="deploy-(")


def test_blocked_lists_are_normalized():
    settings = Settings(
        email_blocked_domains=" Corp.Internal , .lan,,",
        email_blocked_addresses="NoReply@corp.io",
    )

    assert settings.get_blocked_domains() == ["corp.internal", ".lan"]
    assert settings.get_blocked_addresses() == ["noreply@corp.io"]
