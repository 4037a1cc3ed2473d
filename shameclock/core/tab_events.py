from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from shameclock.core.errors import ErrorCategory, PersistenceError
from shameclock.core.utils import extract_domain, now as _now, to_ms

logger = logging.getLogger(__name__)


@dataclass
class ActiveTab:
    tab_id: Optional[int]
    url: Optional[str]
    tracked: bool


class TabEventHandler:
    """Turns host tab/window triggers into session start/stop calls."""

    def __init__(
        self,
        tracker,
        site_matcher,
        tab_host,
        settings,
        clock: Callable[[], datetime] = _now,
        error_log=None,
    ):
        self.tracker = tracker
        self.site_matcher = site_matcher
        self.tab_host = tab_host
        self.settings = settings
        self.clock = clock
        self.error_log = error_log

        self.active_tab: Optional[ActiveTab] = None

    # ---------- host triggers ----------

    def on_tab_activated(self, tab_id: int) -> None:
        try:
            url = self.tab_host.get_tab_url(tab_id)
        except Exception as e:
            logger.error("Could not read tab %s: %s", tab_id, e)
            return
        if url:
            self.update_active_tab(tab_id, url)

    def on_tab_updated(self, tab_id: int, url: Optional[str], status: Optional[str]) -> None:
        if status != "complete" or not url:
            return
        if self.active_tab is not None and self.active_tab.tab_id == tab_id:
            self.update_active_tab(tab_id, url)

    def on_tab_removed(self, tab_id: int) -> None:
        if self.active_tab is None or self.active_tab.tab_id == tab_id:
            self.handle_inactive()

    def on_window_focus_changed(self, window_id: Optional[int]) -> None:
        if window_id is None:
            self.handle_inactive()
            return
        try:
            active = self.tab_host.query_active_tab(window_id)
        except Exception as e:
            logger.error("Could not query active tab of window %s: %s", window_id, e)
            return
        if active:
            tab_id, url = active
            if url:
                self.update_active_tab(tab_id, url)

    # ---------- transitions ----------

    def update_active_tab(self, tab_id: Optional[int], url: str) -> None:
        tracked = self.site_matcher.is_tracked_site(url) is not None
        self.active_tab = ActiveTab(tab_id=tab_id, url=url, tracked=tracked)

        domain = extract_domain(url) if tracked else None
        if domain is None or self.settings.get("tracking_paused", False):
            self._safe_stop()
            return

        try:
            self.tracker.start_session(domain)
        except PersistenceError as e:
            self._record(e, "start_session")

    def resync(self) -> None:
        """
        Restarts tracking of the remembered active tab when no session is
        open, e.g. once a block window has ended.
        """
        tab = self.active_tab
        if tab is None or not tab.tracked or not tab.url:
            return
        if self.tracker.active_session is not None or self.settings.get("tracking_paused", False):
            return
        domain = extract_domain(tab.url)
        if not domain:
            return
        try:
            if self.tracker.start_session(domain):
                logger.info("Tracking resumed on %s", domain)
        except PersistenceError as e:
            self._record(e, "resync")

    def handle_inactive(self) -> None:
        self.active_tab = None
        self._safe_stop()

    def pause(self) -> None:
        self.settings.update({"tracking_paused": True, "paused_at": to_ms(self.clock())})
        self._safe_stop()
        logger.info("Tracking paused")

    def resume(self) -> None:
        self.settings.update({"tracking_paused": False, "paused_at": None})
        logger.info("Tracking resumed")
        try:
            active = self.tab_host.query_active_tab()
        except Exception as e:
            logger.error("Could not re-check active tab on resume: %s", e)
            return
        if active and active[1]:
            self.update_active_tab(active[0], active[1])

    def _safe_stop(self) -> None:
        try:
            self.tracker.stop_session()
        except PersistenceError as e:
            self._record(e, "stop_session")

    def _record(self, error: PersistenceError, step: str) -> None:
        logger.error("Tracking %s failed: %s", step, error)
        if self.error_log is not None:
            self.error_log.record(error, ErrorCategory.TRACKING, {"step": step})
