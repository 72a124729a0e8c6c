"""
Database connection management.

Opens SQLite connections to the voice usage ledger.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "voice_quota_guard.db"

# Seconds a writer waits on another writer's lock before failing
BUSY_TIMEOUT_SECONDS = 10.0


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Open a ledger connection that waits on concurrent writers.

    Transactions are started explicitly by the caller (BEGIN IMMEDIATE for
    read-modify-write), so a second writer blocks for up to
    BUSY_TIMEOUT_SECONDS instead of failing at once.

    Args:
        db_path: Path to SQLite database file

    Returns:
        Open SQLite connection
    """
    conn = sqlite3.connect(str(Path(db_path)), timeout=BUSY_TIMEOUT_SECONDS)
    conn.execute(f"PRAGMA busy_timeout = {int(BUSY_TIMEOUT_SECONDS * 1000)}")
    return conn
