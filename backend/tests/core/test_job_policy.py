"""Job Policy — verifies retry backoff, retry decisions and lock staleness."""

from datetime import datetime, timedelta, timezone

from tutorassist.core.job_policy import (
    LOCK_TIMEOUT,
    next_run_after,
    retry_delay,
    should_retry,
    stale_lock_cutoff,
    worker_id,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def test_backoff_doubles_per_attempt():
    assert retry_delay(0) == timedelta(seconds=1)
    assert retry_delay(3) == timedelta(seconds=8)
    assert next_run_after(NOW, 2) == NOW + timedelta(seconds=4)


def test_retry_requires_flag_and_remaining_attempts():
    assert should_retry(True, 1, 3) is True
    assert should_retry(True, 3, 3) is False
    assert should_retry(False, 1, 3) is False


def test_stale_lock_cutoff_is_five_minutes_back():
    assert LOCK_TIMEOUT == timedelta(minutes=5)
    assert stale_lock_cutoff(NOW) == NOW - timedelta(minutes=5)


def test_worker_ids_are_unique():
    first, second = worker_id(), worker_id()
    assert first.startswith("worker-")
    assert first != second
