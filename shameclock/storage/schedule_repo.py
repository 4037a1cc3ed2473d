from __future__ import annotations

import uuid
from typing import List, Optional

from shameclock.config.settings import KEY_SCHEDULER
from shameclock.core.models import QuickSettings, RuleAction, ScheduleConfig, ScheduleRule


class ScheduleRepository:

    def __init__(self, store, key: str = KEY_SCHEDULER):
        self.store = store
        self.key = key

    # ----------------- raw record -----------------

    def _load_raw(self) -> dict:
        data = self.store.get_value(self.key)
        if not isinstance(data, dict):
            return ScheduleConfig().to_dict()
        return data

    def _save_raw(self, data: dict) -> None:
        self.store.set_value(self.key, data)

    # ----------------- config -----------------

    def load(self) -> ScheduleConfig:
        return ScheduleConfig.from_dict(self._load_raw())

    def set_enabled(self, enabled: bool) -> None:
        data = self._load_raw()
        data["enabled"] = bool(enabled)
        self._save_raw(data)

    def update_quick_settings(self, **changes) -> QuickSettings:
        data = self._load_raw()
        current = QuickSettings.from_dict(data.get("quickSettings", {}))
        for name, value in changes.items():
            if not hasattr(current, name):
                raise ValueError(f"Unknown quick setting '{name}'")
            setattr(current, name, value)
        data["quickSettings"] = current.to_dict()
        self._save_raw(data)
        return current

    # ----------------- rules -----------------

    def list_rules(self) -> List[ScheduleRule]:
        return self.load().rules

    def add_rule(
        self,
        start_time: str = "09:00",
        end_time: str = "17:00",
        days: Optional[List[int]] = None,
        action: RuleAction | str = RuleAction.SUPPRESS,
        threshold_multiplier: float = 1.0,
        name: str = "Custom Schedule",
    ) -> ScheduleRule:
        parsed = RuleAction.parse(action)
        if parsed is None:
            raise ValueError(f"Unknown rule action '{action}'")

        rule = ScheduleRule(
            id=uuid.uuid4().hex,
            start_time=start_time,
            end_time=end_time,
            days=list(days) if days is not None else [1, 2, 3, 4, 5],
            action=parsed,
            threshold_multiplier=float(threshold_multiplier),
            name=name,
        )
        data = self._load_raw()
        rules = list(data.get("rules", data.pop("schedules", [])) or [])
        rules.append(rule.to_dict())
        data["rules"] = rules
        self._save_raw(data)
        return rule

    def update_rule(self, rule_id: str, **changes) -> Optional[ScheduleRule]:
        data = self._load_raw()
        rules = list(data.get("rules", []) or [])
        for idx, raw in enumerate(rules):
            if raw.get("id") != rule_id:
                continue
            rule = ScheduleRule.from_dict(raw)
            for name, value in changes.items():
                if not hasattr(rule, name):
                    raise ValueError(f"Unknown rule field '{name}'")
                if name == "action":
                    value = RuleAction.parse(value)
                setattr(rule, name, value)
            rules[idx] = rule.to_dict()
            data["rules"] = rules
            self._save_raw(data)
            return rule
        return None

    def delete_rule(self, rule_id: str) -> bool:
        data = self._load_raw()
        rules = list(data.get("rules", []) or [])
        kept = [r for r in rules if r.get("id") != rule_id]
        if len(kept) == len(rules):
            return False
        data["rules"] = kept
        self._save_raw(data)
        return True
