"""
Plan tiers and their voice quota policies.

Maps a subscription tier to the daily minutes, per-request cap, hourly
request cap and speech-in/speech-out split that admission control enforces.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union

from .errors import UnknownPlanError

logger = logging.getLogger(__name__)


class PlanTier(Enum):
    """Subscription tiers known to the built-in plan table."""
    STARTER = "starter"
    PLUS = "plus"
    PRO = "pro"
    APEX = "apex"
    SOVEREIGN = "sovereign"


class UsageKind(Enum):
    """Which sub-budget a request draws from."""
    INPUT = "input"    # speech-in: the user's audio
    OUTPUT = "output"  # speech-out: synthesized replies


TierLike = Union[str, PlanTier]


def normalize_tier(tier: Optional[TierLike]) -> str:
    """Return the canonical lowercase tier name."""
    if tier is None:
        return ""
    if isinstance(tier, PlanTier):
        return tier.value
    return str(tier).strip().lower()


@dataclass(frozen=True)
class PlanPolicy:
    """Voice quota policy for one plan tier. A daily_minutes of 0 means no access."""
    daily_minutes: float
    max_request_seconds: float
    requests_per_hour: int
    input_share: float = 0.20
    output_share: float = 0.80

    def __post_init__(self):
        """Validate limits are non-negative and shares are fractions."""
        if self.daily_minutes < 0:
            raise ValueError("daily_minutes cannot be negative")
        if self.max_request_seconds < 0:
            raise ValueError("max_request_seconds cannot be negative")
        if self.requests_per_hour < 0:
            raise ValueError("requests_per_hour cannot be negative")
        for name, share in (("input_share", self.input_share), ("output_share", self.output_share)):
            if share < 0 or share > 1:
                raise ValueError(f"{name} must be between 0 and 1")
        if self.input_share + self.output_share > 1 + 1e-9:
            raise ValueError("input_share + output_share cannot exceed 1")

    @property
    def has_access(self) -> bool:
        return self.daily_minutes > 0

    def share_for(self, kind: UsageKind) -> float:
        return self.input_share if kind is UsageKind.INPUT else self.output_share

    def sub_budget_minutes(self, kind: UsageKind) -> float:
        """Minutes of the daily allowance reserved for one kind of speech."""
        return self.daily_minutes * self.share_for(kind)


NO_ACCESS_POLICY = PlanPolicy(
    daily_minutes=0,
    max_request_seconds=0,
    requests_per_hour=0,
)


@dataclass(frozen=True)
class PlanTable:
    """Tier name to policy lookup."""
    policies: Dict[str, PlanPolicy]

    def get_policy(self, tier: TierLike) -> PlanPolicy:
        """Get the policy for a tier.

        Args:
            tier: Tier name (case-insensitive) or PlanTier

        Returns:
            PlanPolicy for the tier

        Raises:
            UnknownPlanError: If the tier is not in the table
        """
        name = normalize_tier(tier)
        if name not in self.policies:
            raise UnknownPlanError(f"Unknown plan tier: {tier}")
        return self.policies[name]

    def __contains__(self, tier: TierLike) -> bool:
        return normalize_tier(tier) in self.policies


# Built-in plan table; a YAML config can replace it
PLAN_TABLE = PlanTable({
    PlanTier.STARTER.value: NO_ACCESS_POLICY,
    PlanTier.PLUS.value: PlanPolicy(
        daily_minutes=10,
        max_request_seconds=60,
        requests_per_hour=20,
    ),
    PlanTier.PRO.value: PlanPolicy(
        daily_minutes=15,
        max_request_seconds=120,
        requests_per_hour=30,
    ),
    PlanTier.APEX.value: PlanPolicy(
        daily_minutes=25,
        max_request_seconds=180,
        requests_per_hour=40,
    ),
    PlanTier.SOVEREIGN.value: PlanPolicy(
        daily_minutes=999999,
        max_request_seconds=600,
        requests_per_hour=9999,
    ),
})


class PlanPolicyResolver:
    """Fail-closed policy lookup used on the request path.

    Unknown or missing tiers resolve to the zero-access policy instead of
    raising, so admission treats them exactly like a plan without voice.
    """

    def __init__(self, table: PlanTable = PLAN_TABLE):
        self.table = table

    def resolve(self, tier: Optional[TierLike]) -> PlanPolicy:
        if tier in self.table:
            return self.table.get_policy(tier)
        logger.warning("Unknown plan tier %r resolved to zero voice access", tier)
        return NO_ACCESS_POLICY
