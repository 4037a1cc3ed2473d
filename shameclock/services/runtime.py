from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from shameclock.config.settings import KEY_DAILY_RESET
from shameclock.core.commands import CommandRouter
from shameclock.core.cooldown import CooldownGuard
from shameclock.core.dispatcher import InterventionDispatcher
from shameclock.core.errors import ErrorLog, PersistenceError
from shameclock.core.goal_monitor import GoalMonitor
from shameclock.core.schedule_modifier import ScheduleModifier
from shameclock.core.session_tracker import SessionTracker
from shameclock.core.settings_service import SettingsService
from shameclock.core.tab_events import TabEventHandler
from shameclock.core.utils import day_key, now as _now
from shameclock.storage.goals_repo import GoalsRepository
from shameclock.storage.intervention_repo import InterventionStateRepository
from shameclock.storage.ledger_repo import LedgerRepository
from shameclock.storage.schedule_repo import ScheduleRepository

logger = logging.getLogger(__name__)


class ShameClockRuntime:
    """
    Wires the scheduler around one key/value store and the host
    collaborators (site matcher, tab host, presenter).
    """

    def __init__(
        self,
        store,
        site_matcher,
        tab_host,
        presenter,
        clock: Callable[[], datetime] = _now,
        retry_sleep: Callable[[float], None] | None = None,
    ):
        self.store = store
        self.clock = clock

        # ---- Repositories ----
        self.ledger = LedgerRepository(store)
        self.schedule_repo = ScheduleRepository(store)
        self.goals_repo = GoalsRepository(store)
        self.intervention_repo = InterventionStateRepository(store)
        self.error_log = ErrorLog(store, clock=clock)

        # ---- Services ----
        self.settings = SettingsService(store)
        self.schedule = ScheduleModifier(self.schedule_repo)

        tracker_kwargs = {"retention_days": int(self.settings.get("retention_days"))}
        if retry_sleep is not None:
            tracker_kwargs["retry_sleep"] = retry_sleep
        self.tracker = SessionTracker(self.ledger, self.schedule, clock=clock, **tracker_kwargs)

        self.cooldown = CooldownGuard(self.intervention_repo)
        self.goal_monitor = GoalMonitor(self.goals_repo, self.ledger, self.tracker, clock=clock)

        self.tab_events = TabEventHandler(
            self.tracker, site_matcher, tab_host, self.settings, clock=clock, error_log=self.error_log
        )
        self.dispatcher = InterventionDispatcher(
            tracker=self.tracker,
            schedule=self.schedule,
            cooldown=self.cooldown,
            goal_monitor=self.goal_monitor,
            settings=self.settings,
            site_matcher=site_matcher,
            tab_host=tab_host,
            presenter=presenter,
            clock=clock,
            error_log=self.error_log,
        )
        self.commands = CommandRouter(
            tracker=self.tracker,
            tab_events=self.tab_events,
            cooldown=self.cooldown,
            goals_repo=self.goals_repo,
            goal_monitor=self.goal_monitor,
            schedule=self.schedule,
            settings=self.settings,
            site_matcher=site_matcher,
            clock=clock,
        )

        self.settings.settings_changed.connect(self._on_settings_changed)

    def _on_settings_changed(self, changed: dict):

        if "retention_days" in changed:
            self.tracker.retention_days = int(changed["retention_days"])

    # ======================================================
    #                     MAINTENANCE
    # ======================================================

    def run_daily_maintenance(self) -> bool:
        """Prunes the ledger once per calendar day. Returns ``True`` if it ran."""
        today = day_key(self.clock())
        try:
            if self.store.get_value(KEY_DAILY_RESET) == today:
                return False
            self.tracker.prune_old_days()
            self.store.set_value(KEY_DAILY_RESET, today)
        except PersistenceError as e:
            logger.error("Daily maintenance failed: %s", e)
            self.error_log.record(e, e.category, {"step": "daily_maintenance"})
            return False
        return True

    def flush(self) -> None:
        try:
            self.tracker.flush()
        except PersistenceError as e:
            logger.error("Periodic flush failed, will retry next interval: %s", e)
            self.error_log.record(e, e.category, {"step": "flush"})
        self.tab_events.resync()

    def shutdown(self) -> None:
        try:
            self.tracker.stop_session()
        except PersistenceError as e:
            logger.error("Final flush failed: %s", e)
