"""
Voice cost accounting.

Turns consumed speech-in/speech-out seconds into actual cost, the flat
budgeted cost for the same minutes, and the savings between the two.
"""

import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP, ROUND_UP
from typing import Union

from .errors import InvalidUsageError

MONEY_QUANTUM = Decimal("0.0001")
SECONDS_PER_MINUTE = Decimal("60")

Number = Union[int, float, Decimal]


@dataclass(frozen=True)
class VoicePricing:
    """Fixed voice rates and the bonus conversion threshold."""
    input_cost_per_second: Decimal = Decimal("0.0065")   # speech-in audio
    output_cost_per_second: Decimal = Decimal("0.0252")  # speech-out audio
    budgeted_cost_per_minute: Decimal = Decimal("1.42")  # flat rate plans are priced on
    bonus_threshold: Decimal = Decimal("1.00")           # savings per bonus minute
    currency: str = "INR"

    def __post_init__(self):
        """Validate rates are non-negative and the threshold is positive."""
        if self.input_cost_per_second < 0:
            raise ValueError("input_cost_per_second cannot be negative")
        if self.output_cost_per_second < 0:
            raise ValueError("output_cost_per_second cannot be negative")
        if self.budgeted_cost_per_minute < 0:
            raise ValueError("budgeted_cost_per_minute cannot be negative")
        if self.bonus_threshold <= 0:
            raise ValueError("bonus_threshold must be > 0")


DEFAULT_PRICING = VoicePricing()


@dataclass(frozen=True)
class CostBreakdown:
    """Cost of one interaction versus the budgeted flat rate."""
    input_seconds: float
    output_seconds: float
    actual_cost: Decimal
    budgeted_cost: Decimal
    savings: Decimal
    ratio_label: str  # "in:out" percentage split, display only

    @property
    def total_seconds(self) -> float:
        return self.input_seconds + self.output_seconds


def validate_seconds(value: Number, name: str = "seconds") -> None:
    """Reject durations that are missing, negative, NaN or infinite.

    Raises:
        InvalidUsageError: If value is not a finite number >= 0
    """
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise InvalidUsageError(f"{name} must be a number")
    finite = value.is_finite() if isinstance(value, Decimal) else math.isfinite(value)
    if not finite:
        raise InvalidUsageError(f"{name} must be finite")
    if value < 0:
        raise InvalidUsageError(f"{name} cannot be negative")


def to_decimal(value: Number) -> Decimal:
    """Convert a number to Decimal without float representation noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def calculate_cost(
    input_seconds: Number,
    output_seconds: Number,
    pricing: VoicePricing = DEFAULT_PRICING
) -> CostBreakdown:
    """Calculate actual cost, budgeted cost and savings for one interaction.

    Rounding is conservative in the direction of the user: actual cost rounds
    UP and budgeted cost rounds DOWN, so savings are never overstated.

    Args:
        input_seconds: Speech-in duration
        output_seconds: Speech-out duration
        pricing: Rates to apply

    Returns:
        CostBreakdown with money values quantized to 4 places

    Raises:
        InvalidUsageError: If either duration is negative or not finite
    """
    validate_seconds(input_seconds, "input_seconds")
    validate_seconds(output_seconds, "output_seconds")

    seconds_in = to_decimal(input_seconds)
    seconds_out = to_decimal(output_seconds)

    actual = seconds_in * pricing.input_cost_per_second + seconds_out * pricing.output_cost_per_second
    actual = actual.quantize(MONEY_QUANTUM, rounding=ROUND_UP)

    budgeted = (seconds_in + seconds_out) / SECONDS_PER_MINUTE * pricing.budgeted_cost_per_minute
    budgeted = budgeted.quantize(MONEY_QUANTUM, rounding=ROUND_DOWN)

    savings = max(Decimal("0"), budgeted - actual)

    return CostBreakdown(
        input_seconds=float(input_seconds),
        output_seconds=float(output_seconds),
        actual_cost=actual,
        budgeted_cost=budgeted,
        savings=savings,
        ratio_label=ratio_label(seconds_in, seconds_out),
    )


def ratio_label(input_seconds: Number, output_seconds: Number) -> str:
    """Integer-rounded input:output percentage split, e.g. "30:70"."""
    seconds_in = to_decimal(input_seconds)
    total = seconds_in + to_decimal(output_seconds)
    if total <= 0:
        return "0:0"
    input_pct = int((seconds_in * 100 / total).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return f"{input_pct}:{100 - input_pct}"


def calculate_total_minutes(input_seconds: Number, output_seconds: Number) -> float:
    """Combined minutes for billing, rounded to 4 places."""
    return round((float(input_seconds) + float(output_seconds)) / 60, 4)


def estimate_cost(minutes: Number, pricing: VoicePricing = DEFAULT_PRICING) -> Decimal:
    """Budgeted cost of a number of minutes, rounded to 2 places."""
    cost = to_decimal(minutes) * pricing.budgeted_cost_per_minute
    return cost.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
