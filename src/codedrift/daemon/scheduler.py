"""Periodic sweeps run inside the server process.

Three asyncio loops:
- daily sync at the configured hour (UTC)
- retry sweep for rearmed sync jobs
- pending change-event sweep

A sweep that raises is logged and the loop carries on.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from codedrift.config.models import SyncConfig
from codedrift.events.pipeline import ChangeEventPipeline
from codedrift.sync.orchestrator import SyncOrchestrator

logger = structlog.get_logger()


def seconds_until_hour(now: datetime, hour: int) -> float:
    """Seconds from ``now`` to the next ``hour``:00 UTC (strictly in the future)."""
    now = now.astimezone(UTC) if now.tzinfo else now.replace(tzinfo=UTC)
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


@dataclass
class SyncScheduler:
    """Runs the daily, retry and pending-event sweeps until stopped."""

    orchestrator: SyncOrchestrator
    pipeline: ChangeEventPipeline
    config: SyncConfig = field(default_factory=SyncConfig)
    clock: Callable[[], datetime] = field(default=lambda: datetime.now(UTC))

    _tasks: list[asyncio.Task[None]] = field(default_factory=list, init=False)
    _last_runs: dict[str, datetime] = field(default_factory=dict, init=False)

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    async def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._daily_loop(), name="drift-daily-sync"),
            asyncio.create_task(
                self._interval_loop("retry_sweep", self.config.retry_sweep_interval_sec, self.orchestrator.retry_due_jobs),
                name="drift-retry-sweep",
            ),
            asyncio.create_task(
                self._interval_loop("event_sweep", self.config.event_sweep_interval_sec, self.pipeline.process_pending),
                name="drift-event-sweep",
            ),
        ]
        logger.info(
            "scheduler_started",
            daily_hour=self.config.daily_hour,
            retry_interval_sec=self.config.retry_sweep_interval_sec,
            event_interval_sec=self.config.event_sweep_interval_sec,
        )

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        logger.info("scheduler_stopped")

    def status(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "last_runs": {name: ts.isoformat() for name, ts in self._last_runs.items()},
        }

    async def _daily_loop(self) -> None:
        while True:
            delay = seconds_until_hour(self.clock(), self.config.daily_hour)
            logger.debug("daily_sync_scheduled", in_seconds=round(delay))
            await asyncio.sleep(delay)
            await self._run_sweep("daily_sync", self.orchestrator.run_daily_sync)

    async def _interval_loop(self, name: str, interval: float, sweep: Callable[[], Awaitable[Any]]) -> None:
        while True:
            await asyncio.sleep(interval)
            await self._run_sweep(name, sweep)

    async def _run_sweep(self, name: str, sweep: Callable[[], Awaitable[Any]]) -> None:
        try:
            result = await sweep()
        except Exception as e:
            logger.error("sweep_failed", sweep=name, error=str(e), exc_info=True)
            return
        finally:
            self._last_runs[name] = self.clock()
        to_dict = getattr(result, "to_dict", None)
        logger.info("sweep_finished", sweep=name, **(to_dict() if to_dict else {}))
