from __future__ import annotations

import logging
import threading
from typing import Optional

from shameclock.config.settings import DEFAULT_SNOOZE_MS
from shameclock.core.errors import PersistenceError
from shameclock.core.models import InterventionState

logger = logging.getLogger(__name__)


class CooldownGuard:
    """
    Spacing between interventions and the global snooze window.

    State lives in memory and is mirrored to the store so it survives a
    restart; a failed mirror write is logged, never raised.
    """

    def __init__(self, repo):
        self.repo = repo
        self._lock = threading.Lock()
        try:
            self._state = repo.load()
        except PersistenceError as e:
            logger.error("Could not load intervention state, starting fresh: %s", e)
            self._state = InterventionState()

    @property
    def state(self) -> InterventionState:
        with self._lock:
            return InterventionState(**vars(self._state))

    def _persist(self) -> None:
        try:
            self.repo.save(self._state)
        except PersistenceError as e:
            logger.error("Could not persist intervention state: %s", e)

    # ---------- checks ----------

    def is_snoozed(self, now_ms: int) -> bool:
        with self._lock:
            return now_ms < self._state.snooze_until

    def can_fire(self, domain: str, interval: int, now_ms: int) -> bool:
        with self._lock:
            state = self._state
            if now_ms < state.snooze_until:
                return False
            if (
                state.last_intervention_domain == domain
                and now_ms - state.last_intervention_time < interval
            ):
                return False
            return True

    def try_acquire(self, domain: str, interval: int, now_ms: int) -> bool:
        """``can_fire`` and ``record`` as one step."""
        with self._lock:
            state = self._state
            if now_ms < state.snooze_until:
                return False
            if (
                state.last_intervention_domain == domain
                and now_ms - state.last_intervention_time < interval
            ):
                return False
            state.last_intervention_time = now_ms
            state.last_intervention_domain = domain
            self._persist()
            return True

    def record(self, domain: str, now_ms: int) -> None:
        with self._lock:
            self._state.last_intervention_time = now_ms
            self._state.last_intervention_domain = domain
            self._persist()

    # ---------- snooze ----------

    def snooze(self, now_ms: int, duration_ms: Optional[int] = None) -> int:
        duration = DEFAULT_SNOOZE_MS if duration_ms is None else max(0, int(duration_ms))
        with self._lock:
            self._state.snooze_until = now_ms + duration
            self._persist()
            return self._state.snooze_until

    def clear_snooze(self) -> None:
        with self._lock:
            self._state.snooze_until = 0
            self._persist()

    def snooze_status(self, now_ms: int) -> dict:
        with self._lock:
            until = self._state.snooze_until
        return {"snoozed": now_ms < until, "until": until or None}
