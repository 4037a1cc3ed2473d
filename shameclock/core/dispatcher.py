from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from shameclock.core.errors import ErrorCategory, PersistenceError, user_friendly_message
from shameclock.core.models import Delivery, GoalNotification, InterventionDecision
from shameclock.core.thresholds import evaluate_tier, tier_table_from_config
from shameclock.core.utils import extract_domain, format_duration, now as _now, to_ms

logger = logging.getLogger(__name__)


POPUP_TITLE = "Time to refocus!"


@dataclass
class TickResult:
    skipped: bool = False
    stopped_at: Optional[str] = None
    domain: Optional[str] = None
    elapsed: int = 0
    decision: Optional[InterventionDecision] = None
    goal_notifications: List[GoalNotification] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    notices: List[str] = field(default_factory=list)


class InterventionDispatcher:
    """
    One polling iteration: decide on at most one popup for the active
    domain and deliver any new goal notifications.

    Ticks never overlap; a call made while another tick is running returns
    a ``skipped`` result straight away.
    """

    def __init__(
        self,
        tracker,
        schedule,
        cooldown,
        goal_monitor,
        settings,
        site_matcher,
        tab_host,
        presenter,
        clock: Callable[[], datetime] = _now,
        error_log=None,
    ):
        self.tracker = tracker
        self.schedule = schedule
        self.cooldown = cooldown
        self.goal_monitor = goal_monitor
        self.settings = settings
        self.site_matcher = site_matcher
        self.tab_host = tab_host
        self.presenter = presenter
        self.clock = clock
        self.error_log = error_log

        self._tick_lock = threading.Lock()

    # ======================================================
    #                        TICK
    # ======================================================

    def tick(self) -> TickResult:
        if not self._tick_lock.acquire(blocking=False):
            logger.debug("Previous tick still running, skipping")
            return TickResult(skipped=True)
        try:
            return self._run_tick()
        finally:
            self._tick_lock.release()

    def _run_tick(self) -> TickResult:
        result = TickResult()
        now_dt = self.clock()

        # 1) User paused tracking: nothing at all this tick
        if self.settings.get("tracking_paused", False):
            result.stopped_at = "paused"
            return result

        # 2) Blocked window: tracking is inert
        blocked = self._guard(result, "schedule", lambda: self.schedule.is_tracking_blocked(now_dt))
        if blocked is None or blocked:
            result.stopped_at = "blocked"
            return result

        # 3) Active tab must be a tracked site
        active = self._guard(result, "active_tab", self._resolve_active_domain)
        if not active:
            result.stopped_at = "untracked"
            return result
        tab_id, domain = active
        result.domain = domain

        # 4) Elapsed time today
        elapsed = self._guard(result, "elapsed", lambda: self.tracker.get_elapsed_today(domain))
        if elapsed is None:
            result.stopped_at = "elapsed"
            return result
        result.elapsed = elapsed

        # 5-8) Popup path
        self._guard(result, "popup", lambda: self._popup_path(result, tab_id, domain, elapsed, now_dt))

        # 9) Goals, regardless of the popup path
        self._guard(result, "goals", lambda: self._goal_path(result, domain))

        return result

    def _resolve_active_domain(self) -> Optional[Tuple[Optional[int], str]]:
        active = self.tab_host.query_active_tab()
        if not active:
            return None
        tab_id, url = active
        if not url or self.site_matcher.is_tracked_site(url) is None:
            return None
        domain = extract_domain(url)
        if not domain:
            return None
        return tab_id, domain

    # ======================================================
    #                      POPUP PATH
    # ======================================================

    def _popup_path(self, result: TickResult, tab_id, domain: str, elapsed: int, now_dt: datetime) -> None:
        if not self.settings.get("popup_enabled", True):
            result.stopped_at = "popup_disabled"
            return

        baseline = int(self.settings.get("min_time_before_popup_ms", 0) or 0)
        multiplier = self.schedule.get_threshold_multiplier(now_dt)
        if elapsed < round(baseline * multiplier):
            result.stopped_at = "min_time"
            return

        table = tier_table_from_config(
            self.settings.get("thresholds"), self.settings.get("intervals")
        )
        match = evaluate_tier(elapsed, table)
        if match is None:
            result.stopped_at = "no_tier"
            return

        if self.schedule.is_suppressed(now_dt):
            result.stopped_at = "suppressed"
            return

        interval = max(match.interval, int(self.settings.get("popup_cooldown_ms", 0) or 0))
        # State is recorded before delivery so a second tick cannot fire again
        if not self.cooldown.try_acquire(domain, interval, to_ms(now_dt)):
            result.stopped_at = "cooldown"
            return

        decision = InterventionDecision(
            domain=domain,
            tab_id=tab_id,
            elapsed=elapsed,
            tier=match.tier,
            interval=interval,
        )
        decision.delivered = self._deliver(tab_id, domain, elapsed)
        result.decision = decision
        logger.info(
            "Intervention for %s at %s (tier=%s, via %s)",
            domain, format_duration(elapsed), match.tier, decision.delivered.value,
        )

    def _deliver(self, tab_id, domain: str, elapsed: int) -> Delivery:
        try:
            if self.presenter.attempt_overlay_delivery(tab_id, domain, elapsed):
                return Delivery.OVERLAY
        except Exception as e:
            logger.warning("Overlay delivery to tab %s failed: %s", tab_id, e)

        body = f"You've spent {format_duration(elapsed)} on {domain} today."
        try:
            self.presenter.show_system_notification(POPUP_TITLE, body, domain)
            return Delivery.NOTIFICATION
        except Exception as e:
            logger.error("System notification for %s failed: %s", domain, e)
            return Delivery.NONE

    # ======================================================
    #                       GOAL PATH
    # ======================================================

    def _goal_path(self, result: TickResult, domain: str) -> None:
        notifications = self.goal_monitor.check()
        for notif in notifications:
            try:
                self.presenter.show_system_notification(notif.goal_name, notif.message, domain)
            except Exception as e:
                logger.error("Goal notification %s/%s failed: %s", notif.goal_id, notif.threshold, e)
                result.errors.append(f"goal_delivery: {e}")
        result.goal_notifications = notifications

    # ======================================================
    #                     ISOLATION
    # ======================================================

    def _guard(self, result: TickResult, step: str, fn):
        try:
            return fn()
        except PersistenceError as e:
            logger.error("Tick step '%s' storage failure: %s", step, e)
            result.errors.append(f"{step}: {e}")
            result.notices.append(user_friendly_message(e, ErrorCategory.STORAGE))
            if self.error_log is not None:
                self.error_log.record(e, ErrorCategory.STORAGE, {"step": step})
        except Exception as e:
            logger.exception("Tick step '%s' failed", step)
            result.errors.append(f"{step}: {e}")
            if self.error_log is not None:
                self.error_log.record(e, ErrorCategory.UNKNOWN, {"step": step})
        return None
