from datetime import datetime, timedelta
from typing import Optional

from jobqueue.settings import settings

def calculate_retry_delay(
    attempts: int,
    base_delay_seconds: Optional[int] = None,
    max_delay_seconds: Optional[int] = None,
) -> timedelta:
    """
    Exponential backoff for the next attempt after a failure.

    Formula:
        delay = min(base * 2 ^ (attempts - 1), max_delay)

    Args:
        attempts: Attempts made so far, including the one that just failed.
                  attempts=1 means "we failed once, when should we try again?"

    No jitter is applied: the delay never decreases as attempts grow.
    """
    base = settings.RETRY_BASE_DELAY_SECONDS if base_delay_seconds is None else base_delay_seconds
    cap = settings.RETRY_MAX_DELAY_SECONDS if max_delay_seconds is None else max_delay_seconds

    # 2^20 * base is far past any sane cap, so stop growing there.
    exponent = min(max(attempts - 1, 0), 20)
    delay = min(base * (2 ** exponent), cap)
    return timedelta(seconds=delay)

def calculate_next_run(
    now: datetime,
    attempts: int,
    retry_in_seconds: Optional[float] = None,
) -> datetime:
    """
    Returns when a failed job may run again.
    A handler-supplied retry hint replaces the backoff curve but is still capped.
    """
    if retry_in_seconds is not None:
        delay = timedelta(seconds=min(max(retry_in_seconds, 0), settings.RETRY_MAX_DELAY_SECONDS))
    else:
        delay = calculate_retry_delay(attempts)
    return now + delay

def calculate_next_recurrence(completed_at: datetime, interval_minutes: int) -> datetime:
    return completed_at + timedelta(minutes=interval_minutes)

def is_expired(expires_at: Optional[datetime], now: datetime) -> bool:
    return expires_at is not None and now > expires_at
