"""Shared test configuration and fixtures."""

import os
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

TEST_TOKEN = "test_endpoint_token"


@pytest.fixture(autouse=True)
def test_env_vars(tmp_path):
    """Point settings at a temporary data directory for every test."""
    from pipewatch.config.settings import get_settings

    test_vars = {
        "ENVIRONMENT": "testing",
        "DATA_DIRECTORY": str(tmp_path / "data"),
        "ENDPOINT_AUTH_TOKEN": TEST_TOKEN,
        "ALERTS_ENABLED": "true",
        "ALERT_DEDUP_WINDOW_MINUTES": "60",
        "LOG_FILE_ENABLED": "false",
    }

    get_settings.cache_clear()
    with patch.dict(os.environ, test_vars, clear=False):
        os.environ.pop("SMTP_HOST", None)
        os.environ.pop("DATABASE_URL", None)
        yield test_vars
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_process_singletons():
    """Drop the global scheduler, evaluation runner and dedup guard between tests."""
    from pipewatch.scheduler import get_evaluation_runner, get_global_scheduler
    from pipewatch.services.evaluation import get_dedup_guard

    yield

    for func, attr in (
        (get_global_scheduler, "_scheduler"),
        (get_evaluation_runner, "_runner"),
        (get_dedup_guard, "_guard"),
    ):
        if hasattr(func, attr):
            delattr(func, attr)


@pytest.fixture
def isolated_db(tmp_path, monkeypatch):
    """Create an isolated SQLite database and make every repository use it."""
    from pipewatch.ormdb import database
    from pipewatch.ormdb import models  # noqa: F401

    db_path = tmp_path / "test.db"
    db_url = f"sqlite:///{db_path}"

    engine = create_engine(db_url, connect_args={"check_same_thread": False})
    SessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=engine, expire_on_commit=False
    )
    database.Base.metadata.create_all(bind=engine)

    monkeypatch.setattr(database, "_engine", engine)
    monkeypatch.setattr(database, "_SessionLocal", SessionLocal)

    yield {
        "engine": engine,
        "session_factory": SessionLocal,
        "db_url": db_url,
        "db_path": str(db_path),
    }

    engine.dispose()


@pytest.fixture
def db_session(isolated_db):
    session = isolated_db["session_factory"]()
    yield session
    session.close()


@pytest.fixture
def make_alert(db_session):
    """Factory inserting AlertDefinition rows."""
    from pipewatch.ormdb.models import AlertDefinition

    def _make(
        name="svc alerts",
        type="BUILD_FAILURE",
        conditions=None,
        channels=None,
        is_active=True,
    ):
        alert = AlertDefinition(
            name=name,
            type=type,
            conditions=conditions if conditions is not None else {"event": "FAILURE"},
            channels=channels if channels is not None else {"email": {"to": "x@y.com"}},
            is_active=is_active,
        )
        db_session.add(alert)
        db_session.commit()
        return alert

    return _make


@pytest.fixture
def make_integration(db_session):
    """Factory inserting ProviderIntegration rows."""
    from pipewatch.ormdb.models import ProviderIntegration

    def _make(name="ci", kind="JENKINS", is_active=True, **fields):
        if kind == "JENKINS":
            fields.setdefault("base_url", "http://jenkins.local")
        else:
            fields.setdefault("owner", "acme")
            fields.setdefault("repo", "shop")
            fields.setdefault("secret", "ghp_test")
        integration = ProviderIntegration(
            name=name, kind=kind, is_active=is_active, **fields
        )
        db_session.add(integration)
        db_session.commit()
        return integration

    return _make


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def make_run(now):
    """Factory for RunRecord values."""
    from pipewatch.providers.models import (
        ProviderKind,
        RunOutcome,
        RunRecord,
        RunStatus,
    )

    def _make(
        target="svc-ci",
        number=42,
        outcome=RunOutcome.FAILURE,
        status=RunStatus.COMPLETED,
        minutes_ago=10,
        duration_seconds=60.0,
        integration_id="int-1",
        provider=ProviderKind.JENKINS,
    ):
        updated_at = now - timedelta(minutes=minutes_ago)
        return RunRecord(
            provider=provider,
            integration_id=integration_id,
            target=target,
            run_id=str(number),
            number=number,
            status=status,
            outcome=outcome if status == RunStatus.COMPLETED else None,
            started_at=updated_at - timedelta(seconds=duration_seconds),
            updated_at=updated_at,
            duration_seconds=duration_seconds,
            url=f"http://jenkins.local/job/{target}/{number}/",
        )

    return _make


@pytest.fixture
def smtp_transport():
    """SMTP transport double recording sent messages."""
    transport = Mock()
    transport.send = Mock(return_value=None)
    return transport
