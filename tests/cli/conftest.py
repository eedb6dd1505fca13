"""CLI test fixtures."""

import os
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the user's global config and CODEDRIFT__ env vars out of tests."""
    monkeypatch.setattr("codedrift.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "global" / "config.yaml")
    for key in list(os.environ):
        if key.startswith("CODEDRIFT__"):
            monkeypatch.delenv(key)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def obj(fake_vcs: Any) -> dict[str, Any]:
    """Context object handing the fake VCS to every command."""
    return {"vcs": fake_vcs}
