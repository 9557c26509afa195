"""
In-process key-value store.

Suitable for single-process deployments and tests. Expired keys are
dropped when touched and by purge_expired().
"""

import threading
import time
from typing import Callable, Dict, Optional

from .base import KeyValueStore


class InMemoryKeyValueStore(KeyValueStore):
    """Thread-safe dict-backed store with per-key expiry."""

    def __init__(self, clock: Callable[[], float] = time.time):
        """
        Args:
            clock: Function returning the current time in seconds
        """
        self.clock = clock
        self._hashes: Dict[str, Dict[str, str]] = {}
        self._values: Dict[str, str] = {}
        self._expires_at: Dict[str, float] = {}
        self._lock = threading.Lock()

    def _evict_if_expired(self, key: str) -> None:
        expires_at = self._expires_at.get(key)
        if expires_at is not None and self.clock() >= expires_at:
            self._hashes.pop(key, None)
            self._values.pop(key, None)
            del self._expires_at[key]

    def increment_field(self, key: str, field: str, amount: int) -> int:
        with self._lock:
            self._evict_if_expired(key)
            fields = self._hashes.setdefault(key, {})
            value = int(fields.get(field, "0")) + int(amount)
            fields[field] = str(value)
            return value

    def increment_float_field(self, key: str, field: str, amount: float) -> float:
        with self._lock:
            self._evict_if_expired(key)
            fields = self._hashes.setdefault(key, {})
            value = float(fields.get(field, "0")) + float(amount)
            fields[field] = repr(value)
            return value

    def get_all_fields(self, key: str) -> Dict[str, str]:
        with self._lock:
            self._evict_if_expired(key)
            return dict(self._hashes.get(key, {}))

    def set_expiry(self, key: str, seconds: int) -> None:
        with self._lock:
            self._evict_if_expired(key)
            if key in self._hashes or key in self._values:
                self._expires_at[key] = self.clock() + seconds

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            self._evict_if_expired(key)
            return self._values.get(key)

    def set_with_expiry(self, key: str, value: str, seconds: int) -> None:
        with self._lock:
            self._values[key] = value
            self._expires_at[key] = self.clock() + seconds

    def purge_expired(self) -> int:
        with self._lock:
            now = self.clock()
            expired = [key for key, expires_at in self._expires_at.items() if now >= expires_at]
            for key in expired:
                self._hashes.pop(key, None)
                self._values.pop(key, None)
                del self._expires_at[key]
            return len(expired)

    def __len__(self) -> int:
        with self._lock:
            for key in list(self._expires_at):
                self._evict_if_expired(key)
            return len(self._hashes) + len(self._values)
