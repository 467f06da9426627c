"""
Periodic eviction of old jobs.

Jobs are removed once older than the retention window whatever their status.
Nothing is sent on eviction.
"""

import logging
import threading
from typing import Optional

from .storage import JobStore

log = logging.getLogger(__name__)

DEFAULT_MAX_AGE = 24 * 60 * 60
DEFAULT_INTERVAL = 60 * 60


class RetentionSweeper:
    """Runs JobStore.sweep() on its own thread at a fixed interval."""

    def __init__(
        self,
        store: JobStore,
        max_age: float = DEFAULT_MAX_AGE,
        interval: float = DEFAULT_INTERVAL
    ):
        if max_age <= 0:
            raise ValueError("max_age must be positive")
        if interval <= 0:
            raise ValueError("interval must be positive")

        self.store = store
        self.max_age = max_age
        self.interval = interval

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def sweep_now(self) -> int:
        """Run one pass. Returns the number of jobs removed."""
        removed = self.store.sweep(self.max_age)
        if removed:
            log.info("Cleaned up %d old jobs", removed)
        return removed

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="kokoro-podcast-retention",
            daemon=True
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self):
        while not self._stop_event.wait(self.interval):
            try:
                self.sweep_now()
            except Exception:
                log.exception("Retention sweep failed")
