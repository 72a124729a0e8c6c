"""
Repository pattern for data access.

Handles the voice usage ledger table and its atomic read-modify-write.
"""

import logging
import sqlite3
from dataclasses import replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional, Protocol, Tuple

from voice_quota_guard.core.errors import (
    LedgerCorruptedError,
    LedgerNotFoundError,
    LedgerUnavailableError,
)
from .db import DEFAULT_DB_PATH, get_connection
from .models import UsageLedger

logger = logging.getLogger(__name__)

LedgerMutation = Callable[[UsageLedger], UsageLedger]

_COLUMNS = (
    "user_id", "plan_tier", "total_minutes_used", "input_seconds_used",
    "output_seconds_used", "request_count", "requests_this_window_hour",
    "last_used_at", "savings_accumulated", "bonus_minutes_earned",
    "bonus_minutes_used", "actual_cost_total", "savings_total", "created_at",
)


class LedgerStore(Protocol):
    """Durable per-user counters the quota core reads and mutates.

    atomic_update must run the mutation against the latest stored row and
    write its result as one atomic operation, so that two concurrent commits
    for the same user cannot lose an update.
    """

    def find(self, user_id: str) -> Optional[UsageLedger]: ...

    def get(self, user_id: str) -> UsageLedger: ...

    def provision(self, user_id: str, plan_tier: str, now: Optional[datetime] = None) -> UsageLedger: ...

    def atomic_update(self, user_id: str, mutate: LedgerMutation) -> UsageLedger: ...

    def reset(self, user_id: str) -> UsageLedger: ...


def zeroed_ledger(ledger: UsageLedger) -> UsageLedger:
    """Administrative reset: clear window counters, keep plan and bonus state."""
    return UsageLedger(
        user_id=ledger.user_id,
        plan_tier=ledger.plan_tier,
        request_count=0,
        savings_accumulated=ledger.savings_accumulated,
        bonus_minutes_earned=ledger.bonus_minutes_earned,
        bonus_minutes_used=ledger.bonus_minutes_used,
        actual_cost_total=ledger.actual_cost_total,
        savings_total=ledger.savings_total,
        created_at=ledger.created_at,
    )


class SqliteLedgerStore:
    """SQLite-backed ledger store.

    Every atomic_update runs inside BEGIN IMMEDIATE, which takes the database
    write lock before the row is read, so concurrent writers serialize.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the store with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        try:
            return get_connection(self.db_path)
        except sqlite3.Error as e:
            raise LedgerUnavailableError(f"Cannot open ledger database {self.db_path}: {e}") from e

    def find(self, user_id: str) -> Optional[UsageLedger]:
        """Get a user's ledger row, or None if the user was never provisioned."""
        conn = self._connect()
        try:
            return _select(conn, user_id)
        except sqlite3.Error as e:
            raise LedgerUnavailableError(f"Failed to read ledger for {user_id}: {e}") from e
        finally:
            conn.close()

    def get(self, user_id: str) -> UsageLedger:
        """Get a user's ledger row.

        Raises:
            LedgerNotFoundError: If the user was never provisioned
            LedgerUnavailableError: If the database cannot be read
            LedgerCorruptedError: If the stored row cannot be decoded
        """
        ledger = self.find(user_id)
        if ledger is None:
            raise LedgerNotFoundError(user_id)
        return ledger

    def provision(self, user_id: str, plan_tier: str, now: Optional[datetime] = None) -> UsageLedger:
        """Create an all-zero ledger row, or change the tier of an existing one."""
        created_at = now or datetime.now()
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            existing = _select(conn, user_id)
            if existing is None:
                ledger = UsageLedger(user_id=user_id, plan_tier=plan_tier, created_at=created_at)
                conn.execute(
                    f"INSERT INTO voice_usage_ledger ({', '.join(_COLUMNS)}) "
                    f"VALUES ({', '.join('?' for _ in _COLUMNS)})",
                    _to_row(ledger),
                )
            else:
                ledger = replace(existing, plan_tier=plan_tier)
                conn.execute(
                    "UPDATE voice_usage_ledger SET plan_tier = ? WHERE user_id = ?",
                    (plan_tier, user_id),
                )
            conn.commit()
            return ledger
        except sqlite3.Error as e:
            conn.rollback()
            raise LedgerUnavailableError(f"Failed to provision ledger for {user_id}: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def atomic_update(self, user_id: str, mutate: LedgerMutation) -> UsageLedger:
        """Read, mutate and write one ledger row in a single transaction.

        The mutation is applied to the row as read under the write lock. If
        the mutation raises, nothing is written.

        Args:
            user_id: User whose row to update
            mutate: Pure function from the current row to the new row

        Returns:
            The row as written

        Raises:
            LedgerNotFoundError: If the user was never provisioned
            LedgerUnavailableError: If the database cannot be read or written
        """
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            current = _select(conn, user_id)
            if current is None:
                raise LedgerNotFoundError(user_id)
            updated = mutate(current)
            if updated.user_id != user_id:
                raise ValueError("ledger mutation cannot change user_id")
            assignments = ", ".join(f"{column} = ?" for column in _COLUMNS[1:])
            conn.execute(
                f"UPDATE voice_usage_ledger SET {assignments} WHERE user_id = ?",
                _to_row(updated)[1:] + (user_id,),
            )
            conn.commit()
            return updated
        except sqlite3.Error as e:
            conn.rollback()
            raise LedgerUnavailableError(f"Failed to update ledger for {user_id}: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def reset(self, user_id: str) -> UsageLedger:
        """Zero the usage counters for a user (administrative)."""
        ledger = self.atomic_update(user_id, zeroed_ledger)
        logger.info("Force reset voice usage for user %s", user_id)
        return ledger


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the voice_usage_ledger table if it doesn't exist.

    One row per user. Money columns are stored as TEXT so Decimal values
    round-trip exactly.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS voice_usage_ledger (
                user_id TEXT PRIMARY KEY,
                plan_tier TEXT NOT NULL,
                total_minutes_used REAL NOT NULL DEFAULT 0,
                input_seconds_used REAL NOT NULL DEFAULT 0,
                output_seconds_used REAL NOT NULL DEFAULT 0,
                request_count INTEGER NOT NULL DEFAULT 0,
                requests_this_window_hour INTEGER NOT NULL DEFAULT 0,
                last_used_at TEXT,
                savings_accumulated TEXT NOT NULL DEFAULT '0',
                bonus_minutes_earned INTEGER NOT NULL DEFAULT 0,
                bonus_minutes_used REAL NOT NULL DEFAULT 0,
                actual_cost_total TEXT NOT NULL DEFAULT '0',
                savings_total TEXT NOT NULL DEFAULT '0',
                created_at TEXT
            )
        """)
        conn.commit()
    finally:
        conn.close()


def _select(conn: sqlite3.Connection, user_id: str) -> Optional[UsageLedger]:
    cursor = conn.execute(
        f"SELECT {', '.join(_COLUMNS)} FROM voice_usage_ledger WHERE user_id = ?",
        (user_id,),
    )
    row = cursor.fetchone()
    if row is None:
        return None
    return _from_row(row)


def _to_row(ledger: UsageLedger) -> Tuple:
    return (
        ledger.user_id,
        ledger.plan_tier,
        ledger.total_minutes_used,
        ledger.input_seconds_used,
        ledger.output_seconds_used,
        ledger.request_count,
        ledger.requests_this_window_hour,
        ledger.last_used_at.isoformat() if ledger.last_used_at else None,
        str(ledger.savings_accumulated),
        ledger.bonus_minutes_earned,
        ledger.bonus_minutes_used,
        str(ledger.actual_cost_total),
        str(ledger.savings_total),
        ledger.created_at.isoformat() if ledger.created_at else None,
    )


def _from_row(row: Tuple) -> UsageLedger:
    try:
        return UsageLedger(
            user_id=row[0],
            plan_tier=row[1],
            total_minutes_used=float(row[2]),
            input_seconds_used=float(row[3]),
            output_seconds_used=float(row[4]),
            request_count=int(row[5]),
            requests_this_window_hour=int(row[6]),
            last_used_at=datetime.fromisoformat(row[7]) if row[7] else None,
            savings_accumulated=Decimal(row[8]),
            bonus_minutes_earned=int(row[9]),
            bonus_minutes_used=float(row[10]),
            actual_cost_total=Decimal(row[11]),
            savings_total=Decimal(row[12]),
            created_at=datetime.fromisoformat(row[13]) if row[13] else None,
        )
    except (TypeError, ValueError, InvalidOperation) as e:
        raise LedgerCorruptedError(f"Malformed ledger row for user {row[0]}: {e}") from e
