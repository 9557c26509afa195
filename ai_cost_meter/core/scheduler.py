"""
Timer-driven background tasks.

Each PeriodicTask runs a callable on its own daemon thread at a fixed
interval. A Supervisor owns the tasks of one process so they can be
started, stopped and joined deterministically, and so tests can drive
them synchronously with run_once() instead of waiting on timers.
"""

import logging
import threading
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs a callable every interval_seconds until stopped."""

    def __init__(self, name: str, action: Callable[[], object], interval_seconds: float):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.name = name
        self.action = action
        self.interval_seconds = interval_seconds
        self.runs = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> None:
        """Execute the action once; errors are logged and do not stop the task."""
        try:
            self.action()
        except Exception:
            logger.exception("Background task %s failed; retrying next interval", self.name)
        finally:
            self.runs += 1

    def _loop(self) -> None:
        # First run happens one full interval after start
        while not self._stop_event.wait(self.interval_seconds):
            self.run_once()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name=f"ai-cost-meter-{self.name}", daemon=True)
        self._thread.start()
        logger.debug("Started background task %s every %.1fs", self.name, self.interval_seconds)

    def stop(self) -> None:
        self._stop_event.set()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)
            if not self._thread.is_alive():
                self._thread = None


class Supervisor:
    """Owns the background tasks of a process."""

    def __init__(self):
        self._tasks: Dict[str, PeriodicTask] = {}

    def add(self, name: str, action: Callable[[], object], interval_seconds: float) -> PeriodicTask:
        if name in self._tasks:
            raise ValueError(f"Task already registered: {name}")
        task = PeriodicTask(name, action, interval_seconds)
        self._tasks[name] = task
        return task

    @property
    def tasks(self) -> List[PeriodicTask]:
        return list(self._tasks.values())

    def get(self, name: str) -> PeriodicTask:
        return self._tasks[name]

    def start(self) -> None:
        for task in self._tasks.values():
            task.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Signal every task to stop and wait for their threads to exit."""
        for task in self._tasks.values():
            task.stop()
        for task in self._tasks.values():
            task.join(timeout)

    def run_once(self) -> None:
        """Run every task once on the calling thread."""
        for task in self._tasks.values():
            task.run_once()

    def __enter__(self) -> "Supervisor":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
