from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from shameclock.config.settings import RETENTION_DAYS
from shameclock.core.errors import ErrorCategory, PersistenceError, with_retry
from shameclock.core.models import ActiveSession
from shameclock.core.utils import day_key, format_duration, now as _now, to_ms

logger = logging.getLogger(__name__)


@dataclass
class FlushResult:
    domain: str
    elapsed: int
    total_today: int


@dataclass(eq=False)
class _Span:
    day: str
    domain: str
    elapsed: int


class SessionTracker:
    """
    Owns the single active session and is the only writer of the ledger.

    ``get_*`` reads never touch state; every state change happens under
    ``self._lock``. Closed spans wait in ``self._unsaved`` until the ledger
    write succeeds, and reads count them, so a failed write loses nothing
    while the process lives. Write retries sleep without holding the lock.
    """

    def __init__(
        self,
        ledger,
        schedule=None,
        clock: Callable[[], datetime] = _now,
        retention_days: int = RETENTION_DAYS,
        retry_sleep: Callable[[float], None] = time.sleep,
    ):
        self.ledger = ledger
        self.schedule = schedule
        self.clock = clock
        self.retention_days = retention_days
        self.retry_sleep = retry_sleep

        self._lock = threading.RLock()
        self._session: Optional[ActiveSession] = None
        self._unsaved: List[_Span] = []

    # ======================================================
    #                     SESSION CONTROL
    # ======================================================

    @property
    def active_session(self) -> Optional[ActiveSession]:
        with self._lock:
            if self._session is None:
                return None
            return ActiveSession(self._session.domain, self._session.start_ms)

    def start_session(self, domain: str) -> bool:
        """Returns ``True`` if ``domain`` is being tracked afterwards."""
        with self._lock:
            now_dt = self.clock()
            blocked_since = self._blocked_since(now_dt)

            if blocked_since is not None:
                span = self._close(max(blocked_since, self._start_dt(now_dt)))
                tracking = False
            elif self._session is not None and self._session.domain == domain:
                return True
            else:
                span = self._close(now_dt)
                self._session = ActiveSession(domain=domain, start_ms=to_ms(now_dt))
                logger.info("Started tracking: %s", domain)
                tracking = True

        if span is not None:
            try:
                self._save(span)
            except PersistenceError:
                if not tracking:
                    raise
                # The span stays unsaved and the next flush writes it
        return tracking

    def stop_session(self) -> Optional[FlushResult]:
        """
        Commits the active span and clears the session. On a write failure
        the session is still cleared, the span kept for the next flush and
        the error re-raised.
        """
        with self._lock:
            span = self._close(self.clock())
        if span is None:
            return None
        result = self._save(span)
        logger.info("Stopped tracking: %s, added %s", span.domain, format_duration(span.elapsed))
        return result

    def flush(self) -> Optional[FlushResult]:
        """
        Periodic flush: commit the span so far and restart the session under
        the same domain. Inside a block window the session is stopped and
        only the time before the window started is counted. Spans left over
        from failed writes are retried first.
        """
        with self._lock:
            now_dt = self.clock()
            span = None
            if self._session is not None:
                blocked_since = self._blocked_since(now_dt)
                if blocked_since is not None:
                    span = self._close(max(blocked_since, self._start_dt(now_dt)))
                else:
                    domain = self._session.domain
                    span = self._close(now_dt)
                    self._session = ActiveSession(domain=domain, start_ms=to_ms(now_dt))
            backlog = [s for s in self._unsaved if s is not span]

        for older in backlog:
            self._save(older)
        if span is None:
            return None
        return self._save(span)

    def _blocked_since(self, now_dt: datetime) -> Optional[datetime]:
        if self.schedule is None:
            return None
        return self.schedule.tracking_blocked_since(now_dt)

    def _start_dt(self, fallback: datetime) -> datetime:
        if self._session is None:
            return fallback
        return datetime.fromtimestamp(self._session.start_ms / 1000)

    def _close(self, end_dt: datetime) -> Optional[_Span]:
        """Ends the active session at ``end_dt`` and queues its span."""
        session = self._session
        if session is None:
            return None
        self._session = None
        span = _Span(
            day=day_key(end_dt),
            domain=session.domain,
            elapsed=max(0, to_ms(end_dt) - session.start_ms),
        )
        self._unsaved.append(span)
        return span

    def _save(self, span: _Span) -> FlushResult:
        def attempt() -> int:
            with self._lock:
                if span not in self._unsaved:
                    # Another thread already wrote it
                    return int(self.ledger.get_day(span.day).get(span.domain, 0))
                total = self.ledger.add(span.day, span.domain, span.elapsed)
                self._unsaved.remove(span)
                return total

        total = with_retry(attempt, category=ErrorCategory.TRACKING, sleep=self.retry_sleep)
        logger.debug("Committed %s for %s", format_duration(span.elapsed), span.domain)
        return FlushResult(domain=span.domain, elapsed=span.elapsed, total_today=total)

    # ======================================================
    #                          READS
    # ======================================================

    def _live_span(self, domain: Optional[str], now_ms: int) -> int:
        session = self._session
        if session is None:
            return 0
        if domain is not None and session.domain != domain:
            return 0
        return max(0, now_ms - session.start_ms)

    def get_today_totals(self) -> Dict[str, int]:
        """Ledger for today plus unsaved spans and the live session."""
        with self._lock:
            now_dt = self.clock()
            today = day_key(now_dt)
            totals = dict(self.ledger.get_day(today))
            for span in self._unsaved:
                if span.day == today:
                    totals[span.domain] = totals.get(span.domain, 0) + span.elapsed
            if self._session is not None:
                domain = self._session.domain
                totals[domain] = totals.get(domain, 0) + self._live_span(domain, to_ms(now_dt))
            return totals

    def get_elapsed_today(self, domain: str) -> int:
        return self.get_today_totals().get(domain, 0)

    def get_total_today(self) -> int:
        return sum(self.get_today_totals().values())

    def get_today_stats(self) -> List[Tuple[str, int]]:
        return sorted(self.get_today_totals().items(), key=lambda kv: kv[1], reverse=True)

    def tracking_state(self) -> dict:
        with self._lock:
            session = self._session
            return {
                "currentDomain": session.domain if session else None,
                "startTime": session.start_ms if session else None,
                "isTracking": session is not None,
                "unsavedSpans": len(self._unsaved),
            }

    # ======================================================
    #                       MAINTENANCE
    # ======================================================

    def prune_old_days(self) -> int:
        cutoff = day_key(self.clock() - timedelta(days=self.retention_days))
        removed = with_retry(
            lambda: self.ledger.prune_before(cutoff),
            category=ErrorCategory.TRACKING,
            sleep=self.retry_sleep,
        )
        if removed:
            logger.info("Pruned %d ledger day(s) older than %s", removed, cutoff)
        return removed
