"""
Voice quota service.

Wires admission control, usage recording and statistics around a single
injected ledger store. Construct one per store; there is no global instance.
"""

import logging
from datetime import datetime
from typing import Optional, Union

from .admission import AdmissionController, Clock, Decision
from .errors import InvalidUsageError
from .plans import PlanPolicyResolver, TierLike, UsageKind, normalize_tier
from .recorder import CommitResult, UsageRecorder
from .stats import StatsReporter, UsageSnapshot
from voice_quota_guard.config.loader import QuotaConfig, default_quota_config
from voice_quota_guard.storage.models import UsageEvent, UsageLedger
from voice_quota_guard.storage.repository import LedgerStore

logger = logging.getLogger(__name__)


class VoiceQuotaService:
    """Entry point for callers metering voice minutes."""

    def __init__(
        self,
        store: LedgerStore,
        config: Optional[QuotaConfig] = None,
        clock: Optional[Clock] = None
    ):
        self.store = store
        self.config = config or default_quota_config()
        self.clock = clock or datetime.now

        resolver = PlanPolicyResolver(self.config.plans)
        self.resolver = resolver
        self.admission = AdmissionController(store, resolver, self.clock)
        self.recorder = UsageRecorder(store, resolver, self.config.pricing, self.clock)
        self.reporter = StatsReporter(store, resolver, self.config.pricing, self.clock)

    def provision(self, user_id: str, plan_tier: TierLike) -> UsageLedger:
        """Create the user's ledger, or move an existing one to a new tier.

        Raises:
            InvalidUsageError: For an empty user id
            UnknownPlanError: If the tier is not in the configured plan table
        """
        if not user_id or not str(user_id).strip():
            raise InvalidUsageError("user_id is required and cannot be empty")
        self.config.plans.get_policy(plan_tier)
        tier = normalize_tier(plan_tier)
        ledger = self.store.provision(user_id, tier, now=self.clock())
        logger.info("Provisioned voice ledger for user %s on plan %s", user_id, tier)
        return ledger

    def check(self, user_id: str, kind: Union[str, UsageKind], requested_seconds: float) -> Decision:
        return self.admission.check(user_id, kind, requested_seconds)

    def commit(self, user_id: str, event: UsageEvent) -> CommitResult:
        return self.recorder.commit(user_id, event)

    def stats(self, user_id: str) -> UsageSnapshot:
        return self.reporter.snapshot(user_id)

    def reset(self, user_id: str) -> UsageLedger:
        return self.store.reset(user_id)

    def has_voice_access(self, user_id: str) -> bool:
        """Whether the user's plan includes voice at all."""
        ledger = self.store.find(user_id)
        if ledger is None:
            return False
        return self.resolver.resolve(ledger.plan_tier).has_access

    def has_minutes_remaining(self, user_id: str) -> bool:
        """Whether any daily minutes (bonus included) are left right now."""
        if not self.has_voice_access(user_id):
            return False
        return self.stats(user_id).daily_minutes.remaining > 0
