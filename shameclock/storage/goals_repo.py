from __future__ import annotations

import uuid
from typing import List, Optional

from shameclock.config.settings import (
    DEFAULT_GOAL_TARGET_MIN,
    DEFAULT_NOTIFY_AT,
    GOAL_HISTORY_LIMIT,
    KEY_GOALS,
)
from shameclock.core.models import Goal, GoalType


def history_key(goal_id: str, threshold: float, day: str) -> str:
    if float(threshold).is_integer():
        threshold = int(threshold)
    return f"{goal_id}_{threshold}_{day}"


class GoalsRepository:
    """``userGoals`` record: ``{"enabled", "goals": [...], "history": [...]}``."""

    def __init__(self, store, key: str = KEY_GOALS, history_limit: int = GOAL_HISTORY_LIMIT):
        self.store = store
        self.key = key
        self.history_limit = history_limit

    # ----------------- raw record -----------------

    def _load_raw(self) -> dict:
        data = self.store.get_value(self.key)
        if not isinstance(data, dict):
            data = {}
        data.setdefault("enabled", True)
        if not isinstance(data.get("goals"), list):
            data["goals"] = []
        if not isinstance(data.get("history"), list):
            data["history"] = []
        return data

    def _save_raw(self, data: dict) -> None:
        self.store.set_value(self.key, data)

    # ----------------- goals -----------------

    def is_enabled(self) -> bool:
        return bool(self._load_raw().get("enabled", True))

    def list_goals(self) -> List[Goal]:
        return [Goal.from_dict(g) for g in self._load_raw()["goals"] if isinstance(g, dict)]

    def get_goal(self, goal_id: str) -> Optional[Goal]:
        for goal in self.list_goals():
            if goal.id == goal_id:
                return goal
        return None

    def add_goal(
        self,
        type: GoalType | str = GoalType.DAILY_LIMIT,
        target: float = DEFAULT_GOAL_TARGET_MIN,
        domain: Optional[str] = None,
        notify_at: Optional[List[float]] = None,
        name: str = "Daily Limit",
    ) -> Goal:
        goal_type = GoalType.parse(type)
        if goal_type is None:
            raise ValueError(f"Unknown goal type '{type}'")
        if goal_type == GoalType.SITE_LIMIT and not domain:
            raise ValueError("A site limit goal needs a domain")
        if float(target) <= 0:
            raise ValueError("Goal target must be positive")

        goal = Goal(
            id=uuid.uuid4().hex,
            type=goal_type,
            target=float(target),
            domain=domain,
            notify_at=list(notify_at) if notify_at else list(DEFAULT_NOTIFY_AT),
            name=name,
        )
        data = self._load_raw()
        data["goals"].append(goal.to_dict())
        self._save_raw(data)
        return goal

    def update_goal(self, goal_id: str, **changes) -> Optional[Goal]:
        data = self._load_raw()
        for idx, raw in enumerate(data["goals"]):
            if raw.get("id") != goal_id:
                continue
            goal = Goal.from_dict(raw)
            for name, value in changes.items():
                if not hasattr(goal, name):
                    raise ValueError(f"Unknown goal field '{name}'")
                if name == "type":
                    value = GoalType.parse(value)
                setattr(goal, name, value)
            data["goals"][idx] = goal.to_dict()
            self._save_raw(data)
            return goal
        return None

    def delete_goal(self, goal_id: str) -> bool:
        data = self._load_raw()
        kept = [g for g in data["goals"] if g.get("id") != goal_id]
        if len(kept) == len(data["goals"]):
            return False
        data["goals"] = kept
        self._save_raw(data)
        return True

    # ----------------- notification history -----------------

    def load_history(self) -> List[str]:
        return [str(k) for k in self._load_raw()["history"]]

    def append_history(self, keys: List[str]) -> List[str]:
        """Appends ``keys`` and evicts the oldest entries past the cap."""
        data = self._load_raw()
        history = [str(k) for k in data["history"]]
        for k in keys:
            if k not in history:
                history.append(k)
        if len(history) > self.history_limit:
            history = history[-self.history_limit:]
        data["history"] = history
        self._save_raw(data)
        return history
