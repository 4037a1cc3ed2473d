from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, List

from shameclock.config.settings import WEEKLY_WINDOW_DAYS
from shameclock.core.models import Goal, GoalNotification, GoalProgress, GoalType
from shameclock.core.utils import day_key, day_keys_back, now as _now
from shameclock.storage.goals_repo import history_key

logger = logging.getLogger(__name__)


def _sum_day(day_data: Dict[str, int], domain) -> int:
    if domain:
        return int(day_data.get(domain, 0))
    return int(sum(day_data.values()))


def build_message(goal: Goal, progress: GoalProgress, threshold: float) -> str:
    pct = round(progress.percentage)
    if threshold >= 100 and progress.exceeded:
        return f"You've exceeded your {goal.name} goal! Time to take a break."
    if threshold >= 100:
        return f"You've reached your {goal.name} limit of {goal.target:g} minutes."
    if threshold >= 80:
        return f"Warning: You're at {pct}% of your {goal.name} limit."
    return f"Heads up: You've used {pct}% of your {goal.name} limit."


class GoalMonitor:

    def __init__(self, goals_repo, ledger, tracker=None, clock: Callable[[], datetime] = _now):
        self.goals_repo = goals_repo
        self.ledger = ledger
        self.tracker = tracker
        self.clock = clock

    # ---------- progress ----------

    def _today_data(self, now_dt: datetime) -> Dict[str, int]:
        # Unsaved and live spans count, so progress matches the elapsed the
        # dispatcher sees
        if self.tracker is not None and day_key(self.tracker.clock()) == day_key(now_dt):
            return self.tracker.get_today_totals()
        return dict(self.ledger.get_day(day_key(now_dt)))

    def current_ms(self, goal: Goal, now_dt: datetime) -> int:
        today = self._today_data(now_dt)

        if goal.type == GoalType.SITE_LIMIT:
            return int(today.get(goal.domain, 0)) if goal.domain else 0

        if goal.type == GoalType.WEEKLY_LIMIT:
            keys = day_keys_back(now_dt, WEEKLY_WINDOW_DAYS)
            days = self.ledger.get_days(keys[1:])
            total = _sum_day(today, goal.domain)
            for day_data in days.values():
                total += _sum_day(day_data, goal.domain)
            return total

        return _sum_day(today, goal.domain)

    def get_progress(self, goal: Goal, now_dt: datetime | None = None) -> GoalProgress:
        now_dt = now_dt or self.clock()
        current = self.current_ms(goal, now_dt)
        target = goal.target_ms
        percentage = 100.0 * current / target if target > 0 else 0.0
        return GoalProgress(
            goal_id=goal.id,
            goal_name=goal.name,
            current_ms=current,
            target_ms=target,
            percentage=percentage,
            remaining_ms=max(0, target - current),
            exceeded=current > target,
        )

    def get_all_progress(self) -> List[GoalProgress]:
        now_dt = self.clock()
        return [
            self.get_progress(goal, now_dt)
            for goal in self.goals_repo.list_goals()
            if goal.enabled and goal.type is not None
        ]

    # ---------- notifications ----------

    def check(self) -> List[GoalNotification]:
        """
        New threshold crossings for today. Each ``(goal, threshold, day)`` is
        returned at most once; the history is written before returning.
        """
        if not self.goals_repo.is_enabled():
            return []

        now_dt = self.clock()
        today = day_key(now_dt)
        history = set(self.goals_repo.load_history())

        notifications: List[GoalNotification] = []
        new_keys: List[str] = []

        for goal in self.goals_repo.list_goals():
            if not goal.enabled or goal.type is None or goal.target_ms <= 0:
                continue

            progress = self.get_progress(goal, now_dt)
            for threshold in goal.notify_at:
                try:
                    threshold = float(threshold)
                except (TypeError, ValueError):
                    continue
                key = history_key(goal.id, threshold, today)
                if key in history or progress.percentage < threshold:
                    continue

                notifications.append(
                    GoalNotification(
                        goal_id=goal.id,
                        goal_name=goal.name,
                        threshold=threshold,
                        percentage=progress.percentage,
                        exceeded=progress.exceeded,
                        message=build_message(goal, progress, threshold),
                    )
                )
                history.add(key)
                new_keys.append(key)

        if new_keys:
            self.goals_repo.append_history(new_keys)
            logger.info("Goal thresholds crossed: %s", ", ".join(new_keys))

        return notifications
