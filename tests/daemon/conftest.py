"""Fixtures for daemon tests: an AppContext on a temporary database."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
from starlette.testclient import TestClient

from codedrift.config.models import CodeDriftConfig, WebhookConfig
from codedrift.daemon.app import create_app
from codedrift.daemon.context import AppContext

WEBHOOK_SECRET = "daemon-secret"


@pytest.fixture
def app_ctx(tmp_path: Path, fake_vcs: Any) -> Iterator[AppContext]:
    config = CodeDriftConfig(webhook=WebhookConfig(secret=WEBHOOK_SECRET))
    ctx = AppContext.create(config, tmp_path / "state" / "drift.db", vcs=fake_vcs, sinks=[])
    yield ctx
    ctx.db.engine.dispose()


@pytest.fixture
def client(app_ctx: AppContext) -> Iterator[TestClient]:
    with TestClient(create_app(app_ctx)) as test_client:
        yield test_client
