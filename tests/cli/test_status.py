"""Tests for drift status."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from click.testing import CliRunner

from codedrift.cli.main import cli
from codedrift.daemon.lifecycle import write_pid_file


class TestStatus:
    def test_json_counts(self, runner: CliRunner, project: Path, obj: dict[str, Any]) -> None:
        runner.invoke(cli, ["--config-root", str(project), "repo", "add", "acme/api"], obj=obj)
        runner.invoke(cli, ["--config-root", str(project), "sync", "acme/api"], obj=obj)

        result = runner.invoke(cli, ["--config-root", str(project), "status", "--json"], obj=obj)

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["server"] == {"running": False}
        assert data["repositories"] == 1
        assert data["jobs"]["completed"] == 1
        assert data["jobs"]["failed"] == 0
        assert data["pending_documentation_updates"] == 0

    def test_reports_running_server(self, runner: CliRunner, project: Path, obj: dict[str, Any]) -> None:
        # This test process stands in for the server
        write_pid_file(project / ".codedrift", 7711)

        result = runner.invoke(cli, ["--config-root", str(project), "status"], obj=obj)

        assert result.exit_code == 0
        assert f"PID {os.getpid()}, port 7711" in result.output
        assert "Pending documentation updates: 0" in result.output

    def test_not_running(self, runner: CliRunner, project: Path, obj: dict[str, Any]) -> None:
        result = runner.invoke(cli, ["--config-root", str(project), "status"], obj=obj)

        assert result.exit_code == 0
        assert "not running" in result.output
