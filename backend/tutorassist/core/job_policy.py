"""Job Policy — retry backoff, lock staleness and worker identity for the job table.

Invariants:
    - Backoff after the n-th failed attempt is 2^n seconds
    - A processing job whose lock is older than LOCK_TIMEOUT is claimable again
    - A job is never claimed once attempts >= max_attempts
    - A submitted message batch is polled at most MAX_BATCH_POLLS times
"""

import os
import secrets
import socket
from datetime import datetime, timedelta

DEFAULT_MAX_ATTEMPTS = 3
LOCK_TIMEOUT = timedelta(minutes=5)
DEFAULT_BATCH_SIZE = 10

# Message batches finish within 24h; poll every 5 minutes until then
BATCH_POLL_INTERVAL = timedelta(minutes=5)
MAX_BATCH_POLLS = 288


def retry_delay(attempts: int) -> timedelta:
    return timedelta(seconds=2 ** attempts)


def next_run_after(now: datetime, attempts: int) -> datetime:
    return now + retry_delay(attempts)


def should_retry(retry: bool, attempts: int, max_attempts: int) -> bool:
    """attempts is the count AFTER the failure has been recorded."""
    return retry and attempts < max_attempts


def stale_lock_cutoff(now: datetime) -> datetime:
    return now - LOCK_TIMEOUT


def worker_id() -> str:
    host = os.environ.get("HOSTNAME") or socket.gethostname() or "local"
    return f"worker-{host}-{secrets.token_hex(4)}"
