"""
Voice usage statistics.

Read-only projection of ledger, plan policy and bonus state into the
snapshot shown to users. Window corrections are applied on read, so a
snapshot taken after midnight shows zero usage even before the next commit.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from .admission import Clock, compute_remaining
from .bonus import savings_to_next_bonus
from .plans import PlanPolicyResolver, UsageKind
from .pricing import DEFAULT_PRICING, VoicePricing, estimate_cost
from .windows import evaluate_windows
from voice_quota_guard.storage.repository import LedgerStore


@dataclass(frozen=True)
class UsageMeter:
    """Used, limit and remaining for one dimension."""
    used: float
    limit: float
    remaining: float


@dataclass(frozen=True)
class UsageSnapshot:
    """Everything a user-facing usage screen needs."""
    user_id: str
    plan_tier: str
    has_access: bool
    max_request_seconds: float

    daily_minutes: UsageMeter
    input_seconds: UsageMeter
    output_seconds: UsageMeter
    hourly_requests: UsageMeter
    percentage_used: float

    bonus_minutes_earned: int
    bonus_minutes_used: float
    bonus_minutes_available: float
    total_effective_minutes: float
    savings_accumulated: Decimal
    savings_to_next_bonus: Decimal

    request_count: int
    last_used_at: Optional[datetime]
    actual_cost_total: Decimal
    savings_total: Decimal
    estimated_cost_today: Decimal
    currency: str

    daily_resets_at: datetime
    hourly_resets_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly dict: Decimals become strings, datetimes ISO strings."""
        def convert(value):
            if isinstance(value, Decimal):
                return str(value)
            if isinstance(value, datetime):
                return value.isoformat()
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(asdict(self))


class StatsReporter:
    """Builds usage snapshots; never writes to the ledger."""

    def __init__(
        self,
        store: LedgerStore,
        resolver: Optional[PlanPolicyResolver] = None,
        pricing: VoicePricing = DEFAULT_PRICING,
        clock: Optional[Clock] = None
    ):
        self.store = store
        self.resolver = resolver or PlanPolicyResolver()
        self.pricing = pricing
        self.clock = clock or datetime.now

    def snapshot(self, user_id: str) -> UsageSnapshot:
        """Build the usage snapshot for a provisioned user.

        Raises:
            LedgerNotFoundError: If the user was never provisioned
            LedgerUnavailableError: If the ledger store cannot be read
        """
        ledger = self.store.get(user_id)
        policy = self.resolver.resolve(ledger.plan_tier)
        now = self.clock()

        windowed = evaluate_windows(ledger, now)
        remaining = compute_remaining(policy, windowed, ledger)
        input_limit = policy.sub_budget_minutes(UsageKind.INPUT) * 60
        output_limit = policy.sub_budget_minutes(UsageKind.OUTPUT) * 60

        percentage_used = (
            min(100.0, windowed.total_minutes_used / policy.daily_minutes * 100)
            if policy.daily_minutes > 0 else 0.0
        )

        return UsageSnapshot(
            user_id=ledger.user_id,
            plan_tier=ledger.plan_tier,
            has_access=policy.has_access,
            max_request_seconds=policy.max_request_seconds,
            daily_minutes=UsageMeter(
                used=round(windowed.total_minutes_used, 4),
                limit=policy.daily_minutes,
                remaining=remaining.daily_minutes,
            ),
            input_seconds=UsageMeter(
                used=round(windowed.input_seconds_used, 2),
                limit=round(input_limit, 2),
                remaining=remaining.input_seconds,
            ),
            output_seconds=UsageMeter(
                used=round(windowed.output_seconds_used, 2),
                limit=round(output_limit, 2),
                remaining=remaining.output_seconds,
            ),
            hourly_requests=UsageMeter(
                used=windowed.requests_this_hour,
                limit=policy.requests_per_hour,
                remaining=remaining.requests_this_hour,
            ),
            percentage_used=round(percentage_used, 1),
            bonus_minutes_earned=ledger.bonus_minutes_earned,
            bonus_minutes_used=round(ledger.bonus_minutes_used, 4),
            bonus_minutes_available=round(ledger.bonus_minutes_available, 4),
            total_effective_minutes=round(policy.daily_minutes + ledger.bonus_minutes_available, 4),
            savings_accumulated=ledger.savings_accumulated,
            savings_to_next_bonus=savings_to_next_bonus(ledger.savings_accumulated, self.pricing.bonus_threshold),
            request_count=ledger.request_count,
            last_used_at=ledger.last_used_at,
            actual_cost_total=ledger.actual_cost_total,
            savings_total=ledger.savings_total,
            estimated_cost_today=estimate_cost(windowed.total_minutes_used, self.pricing),
            currency=self.pricing.currency,
            daily_resets_at=windowed.daily_resets_at,
            hourly_resets_at=windowed.hourly_resets_at,
        )
