import logging
import time
from dataclasses import asdict
from typing import Callable

from PyQt6.QtCore import QThread, pyqtSignal

from shameclock.config.settings import (
    FLUSH_INTERVAL_SEC,
    MAINTENANCE_INTERVAL_SEC,
    TICK_INTERVAL_SEC,
)

logger = logging.getLogger(__name__)


class BackgroundWorker(QThread):

    intervention_dispatched = pyqtSignal(dict)
    goal_notified = pyqtSignal(dict)
    notice = pyqtSignal(str)
    tick_failed = pyqtSignal(list)

    def __init__(
        self,
        runtime,
        tick_interval: float = TICK_INTERVAL_SEC,
        flush_interval: float = FLUSH_INTERVAL_SEC,
        maintenance_interval: float = MAINTENANCE_INTERVAL_SEC,
        monotonic: Callable[[], float] = time.monotonic,
        poll_sec: float = 1.0,
    ):
        super().__init__()
        self.runtime = runtime
        self.tick_interval = tick_interval
        self.flush_interval = flush_interval
        self.maintenance_interval = maintenance_interval
        self.monotonic = monotonic
        self.poll_sec = poll_sec

        self._running: bool = True
        self._next_tick = 0.0
        self._next_flush = 0.0
        self._next_maintenance = 0.0

    # ======================================================
    #                      MAIN LOOP
    # ======================================================

    def run(self):
        logger.info("Background worker started")
        start = self.monotonic()
        self._next_tick = start
        self._next_flush = start + self.flush_interval
        self._next_maintenance = start

        while self._running:
            try:
                self.run_once()
            except Exception:
                # Nothing may stop the loop; the next pass starts clean
                logger.exception("Background pass failed")
            time.sleep(self.poll_sec)

        self.runtime.shutdown()
        logger.info("Background worker stopped")

    def run_once(self) -> None:
        """One pass: whatever of maintenance, flush and tick is due."""
        now_mono = self.monotonic()

        if now_mono >= self._next_maintenance:
            self._next_maintenance = now_mono + self.maintenance_interval
            self.runtime.run_daily_maintenance()

        if now_mono >= self._next_flush:
            self._next_flush = now_mono + self.flush_interval
            self.runtime.flush()

        if now_mono >= self._next_tick:
            self._next_tick = now_mono + self.tick_interval
            self._tick()

    def _tick(self) -> None:
        result = self.runtime.dispatcher.tick()
        if result.skipped:
            return

        if result.decision is not None:
            payload = asdict(result.decision)
            payload["delivered"] = result.decision.delivered.value
            self.intervention_dispatched.emit(payload)

        for notif in result.goal_notifications:
            self.goal_notified.emit(asdict(notif))

        for text in dict.fromkeys(result.notices):
            self.notice.emit(text)

        if result.errors:
            self.tick_failed.emit(list(result.errors))

    def stop(self):
        self._running = False
