"""Tests for sync/retry.py."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from codedrift.store.models import SyncJobStatus
from codedrift.sync.retry import RetryDecision, backoff_delay, decide_retry


class TestBackoff:
    @pytest.mark.parametrize(("count", "minutes"), [(1, 2), (2, 4), (3, 8)])
    def test_doubles_per_attempt(self, count: int, minutes: int) -> None:
        assert backoff_delay(count) == timedelta(minutes=minutes)


class TestDecideRetry:
    def test_first_failure_is_rearmed(self) -> None:
        decision = decide_retry(SyncJobStatus.FAILED, 0, 3)

        assert decision == RetryDecision(retry=True, retry_count=1, delay=timedelta(minutes=2))

    def test_exhausted_retries(self) -> None:
        decision = decide_retry(SyncJobStatus.FAILED, 3, 3)

        assert not decision.retry
        assert decision.retry_count == 3
        assert decision.next_retry_at(datetime(2026, 1, 1)) is None

    @pytest.mark.parametrize("status", [SyncJobStatus.CANCELLED, SyncJobStatus.COMPLETED, SyncJobStatus.RUNNING])
    def test_only_failed_jobs_retry(self, status: SyncJobStatus) -> None:
        assert not decide_retry(status, 0, 3).retry

    def test_zero_max_retries(self) -> None:
        assert not decide_retry(SyncJobStatus.FAILED, 0, 0).retry

    def test_next_retry_at(self) -> None:
        decision = decide_retry(SyncJobStatus.FAILED, 1, 3)

        assert decision.next_retry_at(datetime(2026, 1, 1, 12, 0)) == datetime(2026, 1, 1, 12, 4)
