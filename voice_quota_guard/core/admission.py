"""
Voice admission control.

Decides, before any audio is processed, whether a request may proceed.

Enforcement Order (first failing check wins):
1. Plan access - Plans without voice minutes are denied outright
2. Per-request cap - Absolute, regardless of remaining quota
3. Hourly rate - Requests started in the current clock hour
4. Daily budget - Base daily minutes plus bonus minutes
5. Sub-budget - Speech-in or speech-out share of the base daily minutes

Denials are returned, never raised. Store failures propagate so that an
unreachable ledger can never be mistaken for unlimited quota.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Union

from .bonus import bonus_headroom
from .errors import InvalidUsageError, LedgerNotFoundError
from .plans import PlanPolicy, PlanPolicyResolver, UsageKind
from .pricing import validate_seconds
from .windows import WindowedUsage, evaluate_windows
from voice_quota_guard.storage.models import UsageLedger
from voice_quota_guard.storage.repository import LedgerStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class ReasonCode(Enum):
    """Why a request was denied."""
    PLAN_NOT_ALLOWED = "plan_not_allowed"
    REQUEST_TOO_LONG = "request_too_long"
    HOURLY_RATE_EXCEEDED = "hourly_rate_exceeded"
    DAILY_QUOTA_EXCEEDED = "daily_quota_exceeded"
    SUB_BUDGET_EXCEEDED = "sub_budget_exceeded"


@dataclass(frozen=True)
class Remaining:
    """What is left in each dimension, all clamped at zero."""
    daily_minutes: float
    input_seconds: float
    output_seconds: float
    requests_this_hour: int
    percentage: float  # of base daily minutes plus bonus headroom

    @classmethod
    def none(cls) -> "Remaining":
        return cls(
            daily_minutes=0.0,
            input_seconds=0.0,
            output_seconds=0.0,
            requests_this_hour=0,
            percentage=0.0,
        )


@dataclass(frozen=True)
class Decision:
    """Outcome of an admission check."""
    allowed: bool
    remaining: Remaining
    reason: Optional[ReasonCode] = None
    message: str = ""

    @property
    def upgrade_required(self) -> bool:
        """True when only a plan upgrade can lift the denial."""
        return self.reason is ReasonCode.PLAN_NOT_ALLOWED


def compute_remaining(policy: PlanPolicy, windowed: WindowedUsage, ledger: UsageLedger) -> Remaining:
    """Remaining allowance in every dimension for already-windowed usage."""
    ceiling = policy.daily_minutes + bonus_headroom(ledger, windowed.total_minutes_used, policy.daily_minutes)
    daily_left = max(0.0, ceiling - windowed.total_minutes_used)
    input_left = max(0.0, policy.sub_budget_minutes(UsageKind.INPUT) * 60 - windowed.input_seconds_used)
    output_left = max(0.0, policy.sub_budget_minutes(UsageKind.OUTPUT) * 60 - windowed.output_seconds_used)
    requests_left = max(0, policy.requests_per_hour - windowed.requests_this_hour)
    percentage = (daily_left / ceiling) * 100 if ceiling > 0 else 0.0

    return Remaining(
        daily_minutes=round(daily_left, 4),
        input_seconds=round(input_left, 2),
        output_seconds=round(output_left, 2),
        requests_this_hour=requests_left,
        percentage=round(percentage, 1),
    )


def parse_kind(kind: Union[str, UsageKind]) -> UsageKind:
    """Accept a UsageKind or its string value."""
    if isinstance(kind, UsageKind):
        return kind
    try:
        return UsageKind(str(kind).strip().lower())
    except ValueError:
        valid_kinds = [k.value for k in UsageKind]
        raise InvalidUsageError(f"kind must be one of: {valid_kinds}")


class AdmissionController:
    """Answers whether a voice request of a given size and kind may proceed now."""

    def __init__(
        self,
        store: LedgerStore,
        resolver: Optional[PlanPolicyResolver] = None,
        clock: Optional[Clock] = None
    ):
        self.store = store
        self.resolver = resolver or PlanPolicyResolver()
        self.clock = clock or datetime.now

    def check(
        self,
        user_id: str,
        kind: Union[str, UsageKind],
        requested_seconds: float
    ) -> Decision:
        """Run the admission checks for one request.

        Args:
            user_id: User making the request
            kind: input (speech-in) or output (speech-out)
            requested_seconds: Expected duration of the request

        Returns:
            Decision with remaining allowance, and a reason when denied

        Raises:
            InvalidUsageError: For an empty user id, unknown kind, or negative or non-finite seconds
            LedgerUnavailableError: If the ledger store cannot be read
            LedgerCorruptedError: If the stored ledger cannot be decoded
        """
        if not user_id or not str(user_id).strip():
            raise InvalidUsageError("user_id is required and cannot be empty")
        usage_kind = parse_kind(kind)
        validate_seconds(requested_seconds, "requested_seconds")

        try:
            ledger = self.store.get(user_id)
        except LedgerNotFoundError:
            ledger = None

        now = self.clock()

        # 1. Plan access
        policy = self.resolver.resolve(ledger.plan_tier if ledger else None)
        if ledger is None or not policy.has_access:
            return self._deny(
                user_id,
                ReasonCode.PLAN_NOT_ALLOWED,
                Remaining.none(),
                "Voice conversations are not included in your plan. Upgrade to unlock voice.",
            )

        windowed = evaluate_windows(ledger, now)
        remaining = compute_remaining(policy, windowed, ledger)
        requested_minutes = requested_seconds / 60

        # 2. Per-request cap
        if requested_seconds > policy.max_request_seconds:
            return self._deny(
                user_id,
                ReasonCode.REQUEST_TOO_LONG,
                remaining,
                f"Audio too long. Your {ledger.plan_tier} plan allows max "
                f"{policy.max_request_seconds:g} seconds per request.",
            )

        # 3. Hourly rate
        if windowed.requests_this_hour >= policy.requests_per_hour:
            return self._deny(
                user_id,
                ReasonCode.HOURLY_RATE_EXCEEDED,
                remaining,
                f"Hourly limit reached ({policy.requests_per_hour} requests/hour). "
                f"Resets at {windowed.hourly_resets_at.strftime('%H:%M')}.",
            )

        # 4. Daily budget, bonus minutes included
        headroom = bonus_headroom(ledger, windowed.total_minutes_used, policy.daily_minutes)
        if windowed.total_minutes_used + requested_minutes > policy.daily_minutes + headroom:
            return self._deny(
                user_id,
                ReasonCode.DAILY_QUOTA_EXCEEDED,
                remaining,
                f"Not enough voice minutes today. Remaining: {remaining.daily_minutes:.1f} min. "
                f"Requested: ~{requested_minutes:.1f} min.",
            )

        # 5. Sub-budget for this kind, base allowance only
        kind_seconds = (
            windowed.input_seconds_used if usage_kind is UsageKind.INPUT
            else windowed.output_seconds_used
        )
        if kind_seconds / 60 + requested_minutes > policy.sub_budget_minutes(usage_kind):
            label = "speech-in" if usage_kind is UsageKind.INPUT else "speech-out"
            return self._deny(
                user_id,
                ReasonCode.SUB_BUDGET_EXCEEDED,
                remaining,
                f"Daily {label} budget of {policy.sub_budget_minutes(usage_kind):g} min used up.",
            )

        return Decision(allowed=True, remaining=remaining)

    def _deny(self, user_id: str, reason: ReasonCode, remaining: Remaining, message: str) -> Decision:
        logger.info("Voice request denied for user %s: %s", user_id, reason.value)
        return Decision(allowed=False, remaining=remaining, reason=reason, message=message)
