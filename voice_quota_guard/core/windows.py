"""
Daily and hourly usage windows.

There is no background job resetting counters. Every read recomputes
whether the stored counters still belong to the current window:

- Daily window: starts at local midnight. Minutes and per-kind seconds
  recorded before it read as 0.
- Hourly window: starts at the top of the hour. The hourly request counter
  recorded before it reads as 0.

Both windows are keyed off the ledger's single last_used_at timestamp. The
stored values become physically zero only when the recorder next writes.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from voice_quota_guard.storage.models import UsageLedger


def day_start(now: datetime) -> datetime:
    """Midnight at the start of now's day."""
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def hour_start(now: datetime) -> datetime:
    """Top of now's hour."""
    return now.replace(minute=0, second=0, microsecond=0)


def next_daily_reset(now: datetime) -> datetime:
    return day_start(now) + timedelta(days=1)


def next_hourly_reset(now: datetime) -> datetime:
    return hour_start(now) + timedelta(hours=1)


@dataclass(frozen=True)
class WindowedUsage:
    """Ledger counters as they apply to the windows containing `now`."""
    total_minutes_used: float
    input_seconds_used: float
    output_seconds_used: float
    requests_this_hour: int
    daily_expired: bool
    hourly_expired: bool
    daily_resets_at: datetime
    hourly_resets_at: datetime


def evaluate_windows(ledger: UsageLedger, now: datetime) -> WindowedUsage:
    """Apply lazy window resets to a ledger without modifying it.

    Args:
        ledger: Stored ledger row
        now: Current time, in the same clock as ledger.last_used_at

    Returns:
        WindowedUsage with expired counters reading as 0
    """
    last_used = ledger.last_used_at
    daily_expired = last_used is None or last_used < day_start(now)
    hourly_expired = last_used is None or last_used < hour_start(now)

    return WindowedUsage(
        total_minutes_used=0.0 if daily_expired else ledger.total_minutes_used,
        input_seconds_used=0.0 if daily_expired else ledger.input_seconds_used,
        output_seconds_used=0.0 if daily_expired else ledger.output_seconds_used,
        requests_this_hour=0 if hourly_expired else ledger.requests_this_window_hour,
        daily_expired=daily_expired,
        hourly_expired=hourly_expired,
        daily_resets_at=next_daily_reset(now),
        hourly_resets_at=next_hourly_reset(now),
    )
