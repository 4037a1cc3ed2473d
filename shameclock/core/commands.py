from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

from shameclock.core.errors import ErrorCategory, PersistenceError, user_friendly_message
from shameclock.core.utils import now as _now, to_ms

logger = logging.getLogger(__name__)


class Command(str, Enum):
    GET_TIME_SPENT = "getTimeSpent"
    GET_TODAY_STATS = "getTodayStats"
    IS_TRACKED_SITE = "isTrackedSite"
    GET_CONFIG = "getConfig"
    PAUSE_TRACKING = "pauseTracking"
    RESUME_TRACKING = "resumeTracking"
    SNOOZE_POPUPS = "snoozePopups"
    GET_SNOOZE_STATUS = "getSnoozeStatus"
    GET_GOALS = "getGoals"
    GET_GOAL_PROGRESS = "getGoalProgress"
    ADD_GOAL = "addGoal"
    DELETE_GOAL = "deleteGoal"
    GET_SCHEDULER_STATUS = "getSchedulerStatus"
    SHOULD_SUPPRESS_POPUPS = "shouldSuppressPopups"


@dataclass
class CommandResult:
    ok: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


class CommandRouter:
    """Fixed table of request handlers for popup/options collaborators."""

    def __init__(
        self,
        tracker,
        tab_events,
        cooldown,
        goals_repo,
        goal_monitor,
        schedule,
        settings,
        site_matcher,
        clock: Callable[[], datetime] = _now,
    ):
        self.tracker = tracker
        self.tab_events = tab_events
        self.cooldown = cooldown
        self.goals_repo = goals_repo
        self.goal_monitor = goal_monitor
        self.schedule = schedule
        self.settings = settings
        self.site_matcher = site_matcher
        self.clock = clock

        self._handlers: Dict[Command, Callable[[dict], dict]] = {
            Command.GET_TIME_SPENT: self._get_time_spent,
            Command.GET_TODAY_STATS: self._get_today_stats,
            Command.IS_TRACKED_SITE: self._is_tracked_site,
            Command.GET_CONFIG: self._get_config,
            Command.PAUSE_TRACKING: self._pause,
            Command.RESUME_TRACKING: self._resume,
            Command.SNOOZE_POPUPS: self._snooze,
            Command.GET_SNOOZE_STATUS: self._snooze_status,
            Command.GET_GOALS: self._get_goals,
            Command.GET_GOAL_PROGRESS: self._get_goal_progress,
            Command.ADD_GOAL: self._add_goal,
            Command.DELETE_GOAL: self._delete_goal,
            Command.GET_SCHEDULER_STATUS: self._scheduler_status,
            Command.SHOULD_SUPPRESS_POPUPS: self._should_suppress,
        }

    def handle(self, action, payload: Optional[dict] = None) -> CommandResult:
        try:
            command = Command(action)
        except ValueError:
            return CommandResult(ok=False, error="Unknown action")

        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            logger.warning("Command %s rejected: payload is %s", command.value, type(payload).__name__)
            return CommandResult(ok=False, error="Invalid payload")

        try:
            return CommandResult(ok=True, data=self._handlers[command](payload))
        except PersistenceError as e:
            logger.error("Command %s storage failure: %s", command.value, e)
            return CommandResult(ok=False, error=user_friendly_message(e, ErrorCategory.STORAGE))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Command %s rejected: %s", command.value, e)
            return CommandResult(ok=False, error=str(e))

    # ---------- tracking ----------

    def _get_time_spent(self, payload: dict) -> dict:
        return {"timeSpent": self.tracker.get_elapsed_today(payload["domain"])}

    def _get_today_stats(self, payload: dict) -> dict:
        stats = [{"domain": d, "timeSpent": ms} for d, ms in self.tracker.get_today_stats()]
        return {"stats": stats, "total": self.tracker.get_total_today()}

    def _is_tracked_site(self, payload: dict) -> dict:
        site = self.site_matcher.is_tracked_site(payload["url"])
        return {"tracked": site is not None, "site": site}

    def _get_config(self, payload: dict) -> dict:
        return {"config": self.settings.snapshot()}

    def _pause(self, payload: dict) -> dict:
        self.tab_events.pause()
        return {"paused": True}

    def _resume(self, payload: dict) -> dict:
        self.tab_events.resume()
        return {"paused": False}

    # ---------- snooze ----------

    def _snooze(self, payload: dict) -> dict:
        until = self.cooldown.snooze(to_ms(self.clock()), payload.get("duration"))
        return {"snoozeUntil": until}

    def _snooze_status(self, payload: dict) -> dict:
        return self.cooldown.snooze_status(to_ms(self.clock()))

    # ---------- goals ----------

    def _get_goals(self, payload: dict) -> dict:
        return {"goals": [g.to_dict() for g in self.goals_repo.list_goals()]}

    def _get_goal_progress(self, payload: dict) -> dict:
        return {"progress": [asdict(p) for p in self.goal_monitor.get_all_progress()]}

    def _add_goal(self, payload: dict) -> dict:
        fields = dict(payload.get("goal") or {})
        goal = self.goals_repo.add_goal(
            type=fields.get("type", "dailyLimit"),
            target=fields.get("target", 60),
            domain=fields.get("domain"),
            notify_at=fields.get("notifyAt"),
            name=fields.get("name", "Daily Limit"),
        )
        return {"goal": goal.to_dict()}

    def _delete_goal(self, payload: dict) -> dict:
        return {"deleted": self.goals_repo.delete_goal(payload["goalId"])}

    # ---------- schedule ----------

    def _scheduler_status(self, payload: dict) -> dict:
        return {"summary": self.schedule.summary(self.clock())}

    def _should_suppress(self, payload: dict) -> dict:
        return {"suppress": self.schedule.is_suppressed(self.clock())}
