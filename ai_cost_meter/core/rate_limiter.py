"""
Fixed-window rate limiter keyed by (user, tier).

State is process-local and lost on restart, which only resets throttling.
Each key has its own lock so the window-reset check, the cap check and the
increment run as one unit per key while different keys never contend.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from .tiers import TierPolicy

logger = logging.getLogger(__name__)

WindowKey = Tuple[str, str]


def monotonic_ms() -> int:
    """Default clock: monotonic time in milliseconds."""
    return int(time.monotonic() * 1000)


@dataclass
class RateLimitWindow:
    """Request count for the window starting at window_start (ms)."""
    requests_in_window: int
    window_start: int


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a single acquire() call."""
    allowed: bool
    requests_in_window: int
    remaining_requests: int
    retry_after_ms: int = 0


class RateLimiter:
    """
    Per-key fixed-window counters.

    A window expires once now - window_start >= rate_window_ms; an expired
    window is restarted at (0, now) before the request is evaluated.
    """

    def __init__(self, clock: Callable[[], int] = monotonic_ms):
        """
        Initialize the limiter.

        Args:
            clock: Function returning the current time in milliseconds
        """
        self.clock = clock
        self._windows: Dict[WindowKey, RateLimitWindow] = {}
        self._locks: Dict[WindowKey, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: WindowKey) -> threading.Lock:
        with self._registry_lock:
            return self._locks.setdefault(key, threading.Lock())

    def _acquire_key(self, key: WindowKey) -> threading.Lock:
        # prune() may drop a key's lock between lookup and acquire
        while True:
            lock = self._lock_for(key)
            lock.acquire()
            if self._locks.get(key) is lock:
                return lock
            lock.release()

    def acquire(self, user_id: str, policy: TierPolicy) -> RateLimitResult:
        """
        Count one request against the (user, tier) window.

        Args:
            user_id: User identifier
            policy: Resolved tier policy supplying window length and cap

        Returns:
            RateLimitResult; retry_after_ms is set when the request is refused
        """
        key = (user_id, policy.name)
        lock = self._acquire_key(key)
        try:
            now = self.clock()
            window = self._windows.get(key)
            if window is None:
                window = RateLimitWindow(requests_in_window=0, window_start=now)
                self._windows[key] = window

            elapsed = now - window.window_start
            if elapsed >= policy.rate_window_ms:
                window.requests_in_window = 0
                window.window_start = now
                elapsed = 0

            if window.requests_in_window >= policy.rate_window_max_requests:
                return RateLimitResult(
                    allowed=False,
                    requests_in_window=window.requests_in_window,
                    remaining_requests=0,
                    retry_after_ms=policy.rate_window_ms - elapsed,
                )

            window.requests_in_window += 1
            return RateLimitResult(
                allowed=True,
                requests_in_window=window.requests_in_window,
                remaining_requests=policy.rate_window_max_requests - window.requests_in_window,
            )
        finally:
            lock.release()

    def get_window(self, user_id: str, tier: str) -> Optional[RateLimitWindow]:
        """Copy of the current window for a key, or None if it has none."""
        key = (user_id, tier)
        lock = self._acquire_key(key)
        try:
            window = self._windows.get(key)
            if window is None:
                return None
            return RateLimitWindow(window.requests_in_window, window.window_start)
        finally:
            lock.release()

    def prune(self, max_window_ms: int) -> int:
        """
        Drop windows that started at least max_window_ms ago.

        Such windows would be reset on their next use anyway, so dropping
        them only reclaims memory for inactive users.

        Returns:
            Number of windows removed
        """
        now = self.clock()
        removed = 0
        with self._registry_lock:
            for key, lock in list(self._locks.items()):
                if not lock.acquire(blocking=False):
                    continue
                try:
                    window = self._windows.get(key)
                    if window is None or now - window.window_start >= max_window_ms:
                        self._windows.pop(key, None)
                        del self._locks[key]
                        removed += 1
                finally:
                    lock.release()

        if removed:
            logger.debug("Pruned %d inactive rate-limit windows", removed)
        return removed

    def __len__(self) -> int:
        return len(self._windows)
