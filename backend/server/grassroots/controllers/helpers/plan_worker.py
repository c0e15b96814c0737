"""
Strategic Plan Stage Background Worker

Periodically sweeps for plans whose stage deadline has passed and advances
them. Runs as a daemon thread in every API process; stage changes are
conditional updates, so several workers sweeping at once still advance each
plan exactly once.
"""

import logging
import threading
import time
from typing import Optional

from grassroots.controllers import config
from grassroots.controllers.helpers.strategic_plans import evaluate_due_transitions

logger = logging.getLogger(__name__)


class PlanStageWorker:
    """Background worker for scheduled plan stage transitions."""

    def __init__(self, interval: int = None, initial_delay: int = 30):
        self.interval = interval or config.PLAN_WORKER_INTERVAL
        self.initial_delay = initial_delay
        self._running = False
        self._thread: Optional[threading.Thread] = None

    def start(self):
        """Start the background worker thread."""
        if self._running:
            return

        self._running = True
        self._thread = threading.Thread(target=self._run_loop, daemon=True)
        self._thread.start()
        logger.info("Plan stage worker started (interval %ss)", self.interval)

    def stop(self):
        """Stop the background worker."""
        self._running = False
        if self._thread:
            self._thread.join(timeout=10)
            self._thread = None
        logger.info("Plan stage worker stopped")

    def _sleep(self, seconds):
        # Sleep in small increments so stop() is responsive
        for _ in range(seconds):
            if not self._running:
                return False
            time.sleep(1)
        return self._running

    def _run_loop(self):
        """Main worker loop: initial delay, then sweep + sleep."""
        if not self._sleep(self.initial_delay):
            return

        while self._running:
            self.run_once()
            if not self._sleep(self.interval):
                return

    def run_once(self):
        """One sweep. Errors are logged; the next interval retries."""
        try:
            summary = evaluate_due_transitions()
        except Exception as e:
            logger.error("Plan stage sweep failed: %s", e, exc_info=True)
            return None

        if summary["advanced"] or summary["errors"]:
            logger.info(
                "Plan stage sweep: %d advanced, %d skipped, %d errors",
                len(summary["advanced"]), summary["skipped"], len(summary["errors"]),
            )
        return summary


# ========== Singleton Worker ==========

_worker: Optional[PlanStageWorker] = None


def start_worker():
    """Start the singleton plan stage worker, unless disabled by config."""
    global _worker
    if not config.PLAN_WORKER_ENABLED:
        logger.info("Plan stage worker disabled")
        return
    if _worker is None:
        _worker = PlanStageWorker()
    _worker.start()


def stop_worker():
    """Stop the singleton plan stage worker."""
    global _worker
    if _worker:
        _worker.stop()
        _worker = None
