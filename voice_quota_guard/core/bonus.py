"""
Bonus minute accrual.

Savings from cheaper-than-budgeted conversations pile up in the ledger's
savings accumulator. Every whole bonus_threshold of accumulated savings
converts into one bonus minute; the remainder carries over.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR

from .errors import InvalidUsageError
from .pricing import Number, to_decimal
from voice_quota_guard.storage.models import UsageLedger


@dataclass(frozen=True)
class BonusAccrual:
    """Outcome of folding one interaction's savings into the ledger."""
    savings_accumulated: Decimal
    bonus_minutes_awarded: int
    bonus_minutes_earned: int

    @property
    def awarded(self) -> bool:
        return self.bonus_minutes_awarded > 0


def accrue_bonus(ledger: UsageLedger, savings: Number, threshold: Number) -> BonusAccrual:
    """Fold savings into the accumulator and convert whole thresholds to minutes.

    A single call can award several minutes when savings cross the threshold
    more than once. The returned accumulator is always below the threshold.

    Args:
        ledger: Ledger holding the current accumulator and earned minutes
        savings: Savings from the interaction being committed
        threshold: Savings required per bonus minute

    Returns:
        BonusAccrual with the new accumulator and earned total

    Raises:
        InvalidUsageError: If savings is negative or threshold is not positive
    """
    savings = to_decimal(savings)
    threshold = to_decimal(threshold)
    if savings < 0:
        raise InvalidUsageError("savings cannot be negative")
    if threshold <= 0:
        raise InvalidUsageError("bonus threshold must be > 0")

    total = ledger.savings_accumulated + savings
    awarded = int((total / threshold).to_integral_value(rounding=ROUND_FLOOR))
    remainder = total - awarded * threshold

    return BonusAccrual(
        savings_accumulated=remainder,
        bonus_minutes_awarded=awarded,
        bonus_minutes_earned=ledger.bonus_minutes_earned + awarded,
    )


def savings_to_next_bonus(savings_accumulated: Decimal, threshold: Number) -> Decimal:
    """Savings still needed before the next bonus minute is awarded."""
    return max(Decimal("0"), to_decimal(threshold) - savings_accumulated)


def bonus_drawn_today(total_minutes_today: float, daily_minutes: float) -> float:
    """Minutes of today's usage that went beyond the base allowance.

    Base allowance is consumed first, so anything past daily_minutes counts
    as drawn, including an overspend admitted before any bonus was earned.
    """
    return max(0.0, total_minutes_today - daily_minutes)


def bonus_headroom(ledger: UsageLedger, total_minutes_today: float, daily_minutes: float) -> float:
    """Bonus minutes that count toward today's daily ceiling.

    This is what is still available plus what has already been drawn today,
    so the ceiling does not shrink as today's bonus is spent.
    """
    return ledger.bonus_minutes_available + bonus_drawn_today(total_minutes_today, daily_minutes)
