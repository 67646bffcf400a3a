"""
Periodic trigger for the PENDING -> PROCESSING sweep.

Runs on a daemon thread, independent of request traffic. At most one sweep is in
flight: a trigger that fires while a sweep is still running is skipped.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PromotionScheduler:
    def __init__(self, job: Callable[[], int], interval_seconds: float = 300.0, name: str = "order-promotion"):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.job = job
        self.interval_seconds = float(interval_seconds)
        self.name = name
        self.runs = 0
        self.skipped = 0
        self._run_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the timer thread. The first sweep fires after one full interval."""
        if self.is_running():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        logger.info("Promotion scheduler started (every %.0fs)", self.interval_seconds)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None
        logger.info("Promotion scheduler stopped")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> Optional[int]:
        """
        Run one sweep now. Returns the number of promoted orders, or None when a
        sweep was already in progress and this trigger was skipped.
        """
        if not self._run_lock.acquire(blocking=False):
            self.skipped += 1
            logger.warning("Previous order promotion still running; skipping this trigger")
            return None
        try:
            logger.info("Starting scheduled order status update task")
            count = self.job()
            self.runs += 1
            logger.info("Completed scheduled order update: %d orders moved to PROCESSING", count)
            return count
        finally:
            self._run_lock.release()

    def _loop(self) -> None:
        # Event.wait doubles as the timer so stop() interrupts the sleep
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.run_once()
            except Exception:
                logger.exception("Scheduled order promotion failed")
