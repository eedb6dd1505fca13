"""Tests for drift sync, sync-all and retry.

Covers:
- Baseline then incremental sync of a registered repository
- Unregistered repository
- Batch commands with nothing to do
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from click.testing import CliRunner

from codedrift.cli.main import cli
from codedrift.core.errors import TransportError

V1 = """def alpha(x):
    return x


def beta(y):
    return y
"""

V2 = """def alpha(x):
    return x


def compute_total(items, tax_rate):
    return sum(items) * tax_rate
"""


def _invoke(runner: CliRunner, project: Path, obj: dict[str, Any], *args: str):
    return runner.invoke(cli, ["--config-root", str(project), *args], obj=obj)


class TestSync:
    def test_baseline_then_incremental(
        self, runner: CliRunner, project: Path, obj: dict[str, Any], fake_vcs: Any
    ) -> None:
        # Given a registered repository with one commit
        _invoke(runner, project, obj, "repo", "add", "acme/api")
        fake_vcs.push_commit("c1", {"src/app.py": V1})

        # When syncing twice around a second commit
        first = _invoke(runner, project, obj, "sync", "acme/api", "--json")
        fake_vcs.push_commit("c2", {"src/app.py": V2})
        second = _invoke(runner, project, obj, "sync", "acme/api", "--json")

        # Then the first records the baseline and the second classifies changes
        assert first.exit_code == 0, first.output
        baseline = json.loads(first.stdout)
        assert baseline["status"] == "completed"
        assert baseline["metadata"]["functions_found"] == 2
        assert "changes" not in baseline

        assert second.exit_code == 0, second.output
        incremental = json.loads(second.stdout)
        assert incremental["commits"] == 1
        assert incremental["changes"]["added"] == 1
        assert incremental["changes"]["deleted"] == 1

    def test_human_output(self, runner: CliRunner, project: Path, obj: dict[str, Any], fake_vcs: Any) -> None:
        _invoke(runner, project, obj, "repo", "add", "acme/api")
        fake_vcs.push_commit("c1", {"src/app.py": V1})

        result = _invoke(runner, project, obj, "sync", "acme/api")

        assert result.exit_code == 0
        assert "Synced acme/api" in result.output
        assert "Functions: 2" in result.output

    def test_no_new_commits(self, runner: CliRunner, project: Path, obj: dict[str, Any]) -> None:
        _invoke(runner, project, obj, "repo", "add", "acme/api")

        result = _invoke(runner, project, obj, "sync", "acme/api")

        assert result.exit_code == 0
        assert "No new commits." in result.output

    def test_unregistered_repository(self, runner: CliRunner, project: Path, obj: dict[str, Any]) -> None:
        result = _invoke(runner, project, obj, "sync", "acme/api")

        assert result.exit_code == 1
        assert "Repository not registered: acme/api" in result.output

    def test_transport_failure_exits_nonzero(
        self, runner: CliRunner, project: Path, obj: dict[str, Any], fake_vcs: Any
    ) -> None:
        _invoke(runner, project, obj, "repo", "add", "acme/api")
        fake_vcs.fail_with = TransportError.timeout("github", "https://api.github.com")

        result = _invoke(runner, project, obj, "sync", "acme/api")

        assert result.exit_code == 1
        assert "Error" in result.output


class TestBatchCommands:
    def test_sync_all(self, runner: CliRunner, project: Path, obj: dict[str, Any]) -> None:
        _invoke(runner, project, obj, "repo", "add", "acme/api")
        _invoke(runner, project, obj, "repo", "add", "acme/docs", "--frequency", "manual")

        result = _invoke(runner, project, obj, "sync-all", "--json")

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["total"] == 1
        assert data["failed"] == {}

    def test_sync_all_nothing_due(self, runner: CliRunner, project: Path, obj: dict[str, Any]) -> None:
        result = _invoke(runner, project, obj, "sync-all")

        assert result.exit_code == 0
        assert "Daily sync: nothing to do" in result.output

    def test_retry_nothing_due(self, runner: CliRunner, project: Path, obj: dict[str, Any]) -> None:
        result = _invoke(runner, project, obj, "retry")

        assert result.exit_code == 0
        assert "Retry sweep: nothing to do" in result.output
