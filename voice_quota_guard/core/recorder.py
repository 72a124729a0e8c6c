"""
Usage recording.

Commits one completed voice interaction to the ledger: counters, cost,
savings and bonus state are written together in one atomic update or not
at all.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from .admission import Clock
from .bonus import BonusAccrual, accrue_bonus, bonus_drawn_today
from .errors import InvalidUsageError
from .plans import PlanPolicyResolver
from .pricing import DEFAULT_PRICING, CostBreakdown, VoicePricing, calculate_cost
from .windows import evaluate_windows
from voice_quota_guard.storage.models import UsageEvent, UsageLedger
from voice_quota_guard.storage.repository import LedgerStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommitResult:
    """What a commit wrote and why."""
    ledger: UsageLedger
    cost: CostBreakdown
    bonus: BonusAccrual
    bonus_minutes_drawn: float


class UsageRecorder:
    """Writes completed interactions into the usage ledger.

    Must only be called after the external speech call succeeded; a failed
    or cancelled call is simply never committed.
    """

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

    def commit(self, user_id: str, event: UsageEvent) -> CommitResult:
        """Record one interaction.

        Args:
            user_id: User the interaction belongs to
            event: Durations reported by the speech layer

        Returns:
            CommitResult with the ledger as written, the cost breakdown and
            any bonus minutes awarded

        Raises:
            InvalidUsageError: For an empty user id or a missing event
            LedgerNotFoundError: If the user was never provisioned
            LedgerUnavailableError: If the ledger store cannot be written
        """
        if not user_id or not str(user_id).strip():
            raise InvalidUsageError("user_id is required and cannot be empty")
        if event is None:
            raise InvalidUsageError("event is required")

        cost = calculate_cost(event.input_seconds, event.output_seconds, self.pricing)
        if event.reported_cost is not None and event.reported_cost != cost.actual_cost:
            logger.debug(
                "Reported cost %s differs from computed cost %s for user %s",
                event.reported_cost, cost.actual_cost, user_id,
            )

        now = self.clock()
        outcome = {}

        def apply(ledger: UsageLedger) -> UsageLedger:
            windowed = evaluate_windows(ledger, now)
            if windowed.daily_expired and ledger.last_used_at is not None:
                logger.debug("Daily voice window rolled over for user %s", user_id)
            policy = self.resolver.resolve(ledger.plan_tier)

            total_before = windowed.total_minutes_used
            total_after = round(total_before + event.total_minutes, 4)

            accrual = accrue_bonus(ledger, cost.savings, self.pricing.bonus_threshold)
            available = max(0.0, accrual.bonus_minutes_earned - ledger.bonus_minutes_used)
            overage = (
                bonus_drawn_today(total_after, policy.daily_minutes)
                - bonus_drawn_today(total_before, policy.daily_minutes)
            )
            drawn = round(min(available, overage), 4)

            outcome["bonus"] = accrual
            outcome["drawn"] = drawn

            return replace(
                ledger,
                total_minutes_used=total_after,
                input_seconds_used=windowed.input_seconds_used + event.input_seconds,
                output_seconds_used=windowed.output_seconds_used + event.output_seconds,
                request_count=ledger.request_count + 1,
                requests_this_window_hour=windowed.requests_this_hour + 1,
                last_used_at=now,
                savings_accumulated=accrual.savings_accumulated,
                bonus_minutes_earned=accrual.bonus_minutes_earned,
                bonus_minutes_used=ledger.bonus_minutes_used + drawn,
                actual_cost_total=ledger.actual_cost_total + cost.actual_cost,
                savings_total=ledger.savings_total + cost.savings,
            )

        ledger = self.store.atomic_update(user_id, apply)
        bonus = outcome["bonus"]

        logger.info(
            "Voice usage recorded for user %s: %.2f min (in: %ss, out: %ss, ratio %s)",
            user_id, event.total_minutes, event.input_seconds, event.output_seconds, cost.ratio_label,
        )
        if bonus.awarded:
            logger.info(
                "User %s earned %d bonus minute(s), %d total",
                user_id, bonus.bonus_minutes_awarded, bonus.bonus_minutes_earned,
            )

        return CommitResult(
            ledger=ledger,
            cost=cost,
            bonus=bonus,
            bonus_minutes_drawn=outcome["drawn"],
        )
