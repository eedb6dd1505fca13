"""Retry decision for failed sync jobs.

Pure: no clock, no DB. The orchestrator applies the decision.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from codedrift.store.models import SyncJobStatus


@dataclass(frozen=True, slots=True)
class RetryDecision:
    """Outcome of a failed attempt.

    ``retry`` false means the job stays failed. Otherwise ``retry_count`` is
    the new count and ``delay`` the wait before the next attempt.
    """

    retry: bool
    retry_count: int
    delay: timedelta | None = None

    def next_retry_at(self, now: datetime) -> datetime | None:
        return now + self.delay if self.delay is not None else None


def backoff_delay(retry_count: int) -> timedelta:
    """2^retry_count minutes: 2, 4, 8 for counts 1, 2, 3."""
    return timedelta(minutes=2**retry_count)


def decide_retry(status: SyncJobStatus, retry_count: int, max_retries: int) -> RetryDecision:
    """Decide whether a job in ``status`` gets another attempt.

    Only failed jobs are rearmed, and only while retry_count < max_retries.
    """
    if status != SyncJobStatus.FAILED or retry_count >= max_retries:
        return RetryDecision(retry=False, retry_count=retry_count)
    count = retry_count + 1
    return RetryDecision(retry=True, retry_count=count, delay=backoff_delay(count))
