# tests/conftest.py

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from taskflow_api.app.core.config import settings as app_settings
from taskflow_api.app.core.db import init_db
from taskflow_api.app.core.security import ROLE_SUPER_ADMIN, ROLE_USER
from taskflow_api.app.main import create_app

from . import factories

# Saturday 6 December 2025, 10:00 in Asia/Manila.
NOW = datetime(2025, 12, 6, 2, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """
    Fresh SQLite file per test.

    Settings are read once at import time, so we patch the shared
    instance rather than the environment.
    """
    db_path = tmp_path / "taskflow.sqlite3"
    monkeypatch.setattr(app_settings, "database_url", str(db_path))
    monkeypatch.setattr(app_settings, "cron_enabled", False)
    monkeypatch.setattr(app_settings, "timezone", "Asia/Manila")
    monkeypatch.setattr(app_settings, "smtp_host", "")
    init_db()
    return db_path


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def super_admin() -> dict:
    return factories.create_user("admin@example.com", "System Admin", role_id=ROLE_SUPER_ADMIN)


@pytest.fixture()
def owner() -> dict:
    return factories.create_user("owner@example.com", "Olivia Owner", role_id=ROLE_USER)


@pytest.fixture()
def workspace(owner: dict) -> dict:
    """Workspace owned by ``owner`` (ADMIN member) with review stage enabled."""
    return factories.create_workspace("Facilities", owner)


@pytest.fixture()
def client() -> Iterator[TestClient]:
    """
    TestClient on a freshly built app.

    A new app per test gives every test its own rate limiter and
    scheduler instead of sharing the module-level ones.
    """
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client
