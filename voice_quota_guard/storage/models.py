"""
Data models for storage layer.

Defines the per-user voice usage ledger and the usage event fed into it.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from voice_quota_guard.core.pricing import calculate_total_minutes, validate_seconds


@dataclass(frozen=True)
class UsageLedger:
    """Per-user voice usage counters.

    The daily counters (total_minutes_used, input_seconds_used,
    output_seconds_used) and requests_this_window_hour are only meaningful
    after window correction: the stored values are not zeroed when a window
    rolls over, only on the next commit.
    """
    user_id: str
    plan_tier: str
    total_minutes_used: float = 0.0
    input_seconds_used: float = 0.0
    output_seconds_used: float = 0.0
    request_count: int = 0
    requests_this_window_hour: int = 0
    last_used_at: Optional[datetime] = None
    savings_accumulated: Decimal = Decimal("0")
    bonus_minutes_earned: int = 0
    bonus_minutes_used: float = 0.0
    actual_cost_total: Decimal = Decimal("0")
    savings_total: Decimal = Decimal("0")
    created_at: Optional[datetime] = None

    @property
    def bonus_minutes_available(self) -> float:
        """Bonus minutes earned and not yet drawn, never negative."""
        return max(0.0, self.bonus_minutes_earned - self.bonus_minutes_used)


@dataclass(frozen=True)
class UsageEvent:
    """One completed voice interaction as reported by the speech layer.

    reported_cost is whatever the vendor call claimed; the ledger always
    recomputes cost from the configured rates.
    """
    input_seconds: float
    output_seconds: float
    reported_cost: Optional[Decimal] = None

    def __post_init__(self):
        """Validate durations are finite and non-negative."""
        validate_seconds(self.input_seconds, "input_seconds")
        validate_seconds(self.output_seconds, "output_seconds")

    @property
    def total_seconds(self) -> float:
        return self.input_seconds + self.output_seconds

    @property
    def total_minutes(self) -> float:
        """Combined minutes, rounded to 4 places."""
        return calculate_total_minutes(self.input_seconds, self.output_seconds)
