"""Background scheduler that drives evaluator ticks on a fixed cadence."""
from __future__ import annotations

import logging
import threading
from typing import Callable

from ..config import settings
from .evaluator import Evaluator, TickReport

logger = logging.getLogger(__name__)

TickCallback = Callable[[TickReport | None], None]


class Scheduler:
    """Run ``evaluator.tick()`` every ``interval`` seconds on one daemon thread.

    ``stop`` waits for an in-flight tick to finish so no alert is left
    half-written.  Tests call ``run_once`` directly instead of starting
    the thread.
    """

    def __init__(
        self,
        evaluator: Evaluator,
        interval: float | None = None,
        run_immediately: bool = False,
    ) -> None:
        self.evaluator = evaluator
        self.interval = interval if interval is not None else settings.evaluation_interval
        self.run_immediately = run_immediately
        self.consecutive_failures = 0
        self.ticks = 0
        self._callbacks: list[TickCallback] = []
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def on_tick(self, callback: TickCallback) -> None:
        """Register a callback run after every tick with its report (None on failure)."""
        self._callbacks.append(callback)

    def start(self) -> None:
        """Start ticking in the background.  No-op when already running."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run_loop, name="logwarden-evaluator", daemon=True)
        self._thread.start()
        logger.info("Scheduler started (every %ss)", self.interval)

    def stop(self, timeout: float | None = None) -> None:
        """Stop ticking; blocks until the current tick (if any) completes."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Scheduler thread still finishing a tick after %ss", timeout)
            else:
                self._thread = None
        logger.info("Scheduler stopped")

    def run_once(self) -> TickReport | None:
        """Run a single tick, logging rather than raising on failure."""
        report = self._tick()
        for callback in self._callbacks:
            try:
                callback(report)
            except Exception as exc:
                logger.warning("Tick callback error: %s", exc)
        return report

    def _tick(self) -> TickReport | None:
        try:
            report = self.evaluator.tick()
        except Exception as exc:
            self.consecutive_failures += 1
            logger.error("Evaluation tick failed (%d in a row): %s", self.consecutive_failures, exc)
            return None
        self.ticks += 1
        if report.load_error is not None:
            self.consecutive_failures += 1
        else:
            self.consecutive_failures = 0
        return report

    def _run_loop(self) -> None:
        if self.run_immediately:
            self.run_once()
        while not self._stop.wait(self.interval):
            self.run_once()
