"""Tests for daemon/scheduler.py.

Covers:
- seconds_until_hour across the day boundary
- Sweep failures are logged and recorded, never raised
- start/stop task management
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from codedrift.config.models import SyncConfig
from codedrift.daemon.scheduler import SyncScheduler, seconds_until_hour

NOW = datetime(2026, 3, 1, 5, 30, tzinfo=UTC)


class TestSecondsUntilHour:
    def test_later_today(self) -> None:
        assert seconds_until_hour(NOW, 6) == 30 * 60

    def test_tomorrow_when_hour_passed(self) -> None:
        assert seconds_until_hour(NOW, 5) == timedelta(hours=23, minutes=30).total_seconds()

    def test_exact_hour_schedules_next_day(self) -> None:
        assert seconds_until_hour(datetime(2026, 3, 1, 6, 0, tzinfo=UTC), 6) == 24 * 3600

    def test_naive_treated_as_utc(self) -> None:
        assert seconds_until_hour(datetime(2026, 3, 1, 5, 30), 6) == 30 * 60

    def test_other_timezone_converted(self) -> None:
        # 07:30 at UTC+2 is 05:30 UTC
        local = datetime(2026, 3, 1, 7, 30, tzinfo=timezone(timedelta(hours=2)))

        assert seconds_until_hour(local, 6) == 30 * 60


def _scheduler(**config: float) -> tuple[SyncScheduler, MagicMock, MagicMock]:
    orchestrator = MagicMock()
    orchestrator.run_daily_sync = AsyncMock()
    orchestrator.retry_due_jobs = AsyncMock()
    pipeline = MagicMock()
    pipeline.process_pending = AsyncMock()
    scheduler = SyncScheduler(orchestrator, pipeline, SyncConfig(**config), clock=lambda: NOW)
    return scheduler, orchestrator, pipeline


class TestSweeps:
    @pytest.mark.asyncio
    async def test_failing_sweep_is_recorded(self) -> None:
        scheduler, orchestrator, _ = _scheduler()
        orchestrator.retry_due_jobs.side_effect = RuntimeError("db locked")

        await scheduler._run_sweep("retry_sweep", orchestrator.retry_due_jobs)

        assert scheduler.status()["last_runs"] == {"retry_sweep": NOW.isoformat()}

    @pytest.mark.asyncio
    async def test_successful_sweep_result_is_logged(self) -> None:
        scheduler, _, pipeline = _scheduler()
        pipeline.process_pending.return_value = MagicMock(to_dict=lambda: {"processed": 2})

        await scheduler._run_sweep("event_sweep", pipeline.process_pending)

        pipeline.process_pending.assert_awaited_once()
        assert "event_sweep" in scheduler.status()["last_runs"]


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop(self) -> None:
        scheduler, _, _ = _scheduler(retry_sweep_interval_sec=3600, event_sweep_interval_sec=3600)

        await scheduler.start()
        assert scheduler.running
        assert scheduler.status()["running"] is True

        await scheduler.stop()
        assert not scheduler.running
        assert scheduler.status() == {"running": False, "last_runs": {}}

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self) -> None:
        scheduler, _, _ = _scheduler(retry_sweep_interval_sec=3600, event_sweep_interval_sec=3600)

        await scheduler.start()
        tasks = list(scheduler._tasks)
        await scheduler.start()

        assert scheduler._tasks == tasks
        await scheduler.stop()
