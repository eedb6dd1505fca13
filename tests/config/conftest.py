"""Config test fixtures."""

import os
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the user's global config and CODEDRIFT__ env vars out of tests."""
    monkeypatch.setattr("codedrift.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "global" / "config.yaml")
    for key in list(os.environ):
        if key.startswith("CODEDRIFT__"):
            monkeypatch.delenv(key)
