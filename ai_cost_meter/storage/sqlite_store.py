"""
SQLite-backed key-value store.

Each increment is a single UPSERT statement, so concurrent writers in
separate processes never lose updates. Expired keys are purged inside
the same transaction as the next write and ignored on read.
"""

import sqlite3
import time
from typing import Callable, Dict, Optional

from ai_cost_meter.core.errors import InfrastructureError

from .base import KeyValueStore
from .db import DEFAULT_DB_PATH, get_connection


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the key-value tables if they don't exist.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS kv_hash (
                key TEXT NOT NULL,
                field TEXT NOT NULL,
                value,
                PRIMARY KEY (key, field)
            );
            CREATE TABLE IF NOT EXISTS kv_value (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS kv_expiry (
                key TEXT PRIMARY KEY,
                expires_at REAL NOT NULL
            );
        """)
        conn.commit()
    finally:
        conn.close()


class SQLiteKeyValueStore(KeyValueStore):
    """Key-value store persisted in a SQLite file.

    Opens a short-lived connection per operation; the connection timeout
    bounds how long a call may wait on a locked database.
    """

    def __init__(
        self,
        db_path: str = DEFAULT_DB_PATH,
        timeout: float = 2.0,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the store with a database path.

        Args:
            db_path: Path to SQLite database file
            timeout: Seconds to wait on a locked database
            clock: Function returning the current time in seconds
        """
        self.db_path = db_path
        self.timeout = timeout
        self.clock = clock

    def _connect(self) -> sqlite3.Connection:
        return get_connection(self.db_path, timeout=self.timeout)

    def _purge_if_expired(self, conn: sqlite3.Connection, key: str) -> None:
        row = conn.execute(
            "SELECT expires_at FROM kv_expiry WHERE key = ?", (key,)
        ).fetchone()
        if row is not None and self.clock() >= row[0]:
            conn.execute("DELETE FROM kv_hash WHERE key = ?", (key,))
            conn.execute("DELETE FROM kv_value WHERE key = ?", (key,))
            conn.execute("DELETE FROM kv_expiry WHERE key = ?", (key,))

    def _is_live(self, conn: sqlite3.Connection, key: str) -> bool:
        row = conn.execute(
            "SELECT expires_at FROM kv_expiry WHERE key = ?", (key,)
        ).fetchone()
        return row is None or self.clock() < row[0]

    def _increment(self, key: str, field: str, amount):
        conn = self._connect()
        try:
            with conn:
                self._purge_if_expired(conn, key)
                row = conn.execute("""
                    INSERT INTO kv_hash (key, field, value) VALUES (?, ?, ?)
                    ON CONFLICT (key, field) DO UPDATE SET value = value + excluded.value
                    RETURNING value
                """, (key, field, amount)).fetchone()
            return row[0]
        except sqlite3.Error as e:
            raise InfrastructureError(f"SQLite increment failed for {key}.{field}: {e}", "sqlite") from e
        finally:
            conn.close()

    def increment_field(self, key: str, field: str, amount: int) -> int:
        return int(self._increment(key, field, int(amount)))

    def increment_float_field(self, key: str, field: str, amount: float) -> float:
        return float(self._increment(key, field, float(amount)))

    def get_all_fields(self, key: str) -> Dict[str, str]:
        conn = self._connect()
        try:
            if not self._is_live(conn, key):
                return {}
            cursor = conn.execute("SELECT field, value FROM kv_hash WHERE key = ?", (key,))
            return {field: str(value) for field, value in cursor.fetchall()}
        except sqlite3.Error as e:
            raise InfrastructureError(f"SQLite read failed for {key}: {e}", "sqlite") from e
        finally:
            conn.close()

    def set_expiry(self, key: str, seconds: int) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute("""
                    INSERT INTO kv_expiry (key, expires_at) VALUES (?, ?)
                    ON CONFLICT (key) DO UPDATE SET expires_at = excluded.expires_at
                """, (key, self.clock() + seconds))
        except sqlite3.Error as e:
            raise InfrastructureError(f"SQLite expiry update failed for {key}: {e}", "sqlite") from e
        finally:
            conn.close()

    def get(self, key: str) -> Optional[str]:
        conn = self._connect()
        try:
            if not self._is_live(conn, key):
                return None
            row = conn.execute("SELECT value FROM kv_value WHERE key = ?", (key,)).fetchone()
            return row[0] if row else None
        except sqlite3.Error as e:
            raise InfrastructureError(f"SQLite read failed for {key}: {e}", "sqlite") from e
        finally:
            conn.close()

    def set_with_expiry(self, key: str, value: str, seconds: int) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute("""
                    INSERT INTO kv_value (key, value) VALUES (?, ?)
                    ON CONFLICT (key) DO UPDATE SET value = excluded.value
                """, (key, value))
                conn.execute("""
                    INSERT INTO kv_expiry (key, expires_at) VALUES (?, ?)
                    ON CONFLICT (key) DO UPDATE SET expires_at = excluded.expires_at
                """, (key, self.clock() + seconds))
        except sqlite3.Error as e:
            raise InfrastructureError(f"SQLite write failed for {key}: {e}", "sqlite") from e
        finally:
            conn.close()

    def purge_expired(self) -> int:
        conn = self._connect()
        try:
            with conn:
                now = self.clock()
                expired = "SELECT key FROM kv_expiry WHERE expires_at <= ?"
                conn.execute(f"DELETE FROM kv_hash WHERE key IN ({expired})", (now,))
                conn.execute(f"DELETE FROM kv_value WHERE key IN ({expired})", (now,))
                cursor = conn.execute("DELETE FROM kv_expiry WHERE expires_at <= ?", (now,))
            return cursor.rowcount
        except sqlite3.Error as e:
            raise InfrastructureError(f"SQLite purge failed: {e}", "sqlite") from e
        finally:
            conn.close()
