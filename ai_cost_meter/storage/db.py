"""
Database connection management.

Provides SQLite connections for the persistent key-value store.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "ai_cost_meter.db"


def get_connection(db_path: str = DEFAULT_DB_PATH, timeout: float = 2.0) -> sqlite3.Connection:
    """Create and return a SQLite database connection.

    Args:
        db_path: Path to SQLite database file
        timeout: Seconds to wait on a locked database before failing

    Returns:
        SQLite connection with WAL journaling enabled
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path), timeout=timeout)
    conn.execute("PRAGMA journal_mode = WAL")
    return conn
