"""
In-process ledger store.

Same contract as the SQLite store, kept in a dict behind a lock. Used by the
test suite and by callers embedding the quota core without a database.
"""

import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, Optional

from voice_quota_guard.core.errors import LedgerNotFoundError
from .models import UsageLedger
from .repository import LedgerMutation, zeroed_ledger

logger = logging.getLogger(__name__)


class InMemoryLedgerStore:
    """Dict-backed ledger store; atomic_update holds a lock across read and write."""

    def __init__(self):
        self._rows: Dict[str, UsageLedger] = {}
        self._lock = threading.Lock()

    def find(self, user_id: str) -> Optional[UsageLedger]:
        with self._lock:
            return self._rows.get(user_id)

    def get(self, user_id: str) -> UsageLedger:
        ledger = self.find(user_id)
        if ledger is None:
            raise LedgerNotFoundError(user_id)
        return ledger

    def provision(self, user_id: str, plan_tier: str, now: Optional[datetime] = None) -> UsageLedger:
        with self._lock:
            existing = self._rows.get(user_id)
            if existing is None:
                ledger = UsageLedger(user_id=user_id, plan_tier=plan_tier, created_at=now or datetime.now())
            else:
                ledger = replace(existing, plan_tier=plan_tier)
            self._rows[user_id] = ledger
            return ledger

    def atomic_update(self, user_id: str, mutate: LedgerMutation) -> UsageLedger:
        with self._lock:
            current = self._rows.get(user_id)
            if current is None:
                raise LedgerNotFoundError(user_id)
            updated = mutate(current)
            if updated.user_id != user_id:
                raise ValueError("ledger mutation cannot change user_id")
            self._rows[user_id] = updated
            return updated

    def reset(self, user_id: str) -> UsageLedger:
        ledger = self.atomic_update(user_id, zeroed_ledger)
        logger.info("Force reset voice usage for user %s", user_id)
        return ledger
