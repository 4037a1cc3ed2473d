from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from shameclock.config.settings import (
    DEFAULT_GOAL_TARGET_MIN,
    DEFAULT_NOTIFY_AT,
)


# ---------------------------------------------------------------------------
#   Sessions
# ---------------------------------------------------------------------------

@dataclass
class ActiveSession:
    domain: str
    start_ms: int


# ---------------------------------------------------------------------------
#   Schedule
# ---------------------------------------------------------------------------

class RuleAction(str, Enum):
    SUPPRESS = "suppress"
    ADJUST_THRESHOLD = "adjustThreshold"
    BLOCK_TRACKING = "blockTracking"

    @classmethod
    def parse(cls, value) -> Optional["RuleAction"]:
        aliases = {
            "disable_popups": cls.SUPPRESS,
            "adjust_threshold": cls.ADJUST_THRESHOLD,
            "block_tracking": cls.BLOCK_TRACKING,
        }
        if isinstance(value, cls):
            return value
        if value in aliases:
            return aliases[value]
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass
class QuickSettings:
    quiet_hours_enabled: bool = False
    quiet_hours_start: str = "22:00"
    quiet_hours_end: str = "08:00"
    work_hours_enabled: bool = False
    work_hours_start: str = "09:00"
    work_hours_end: str = "17:00"
    work_days: List[int] = field(default_factory=lambda: [1, 2, 3, 4, 5])
    weekend_mode: bool = False
    weekend_multiplier: float = 1.5

    @classmethod
    def from_dict(cls, data: dict) -> "QuickSettings":
        data = data or {}
        d = cls()
        return cls(
            quiet_hours_enabled=bool(data.get("quietHoursEnabled", d.quiet_hours_enabled)),
            quiet_hours_start=str(data.get("quietHoursStart", d.quiet_hours_start)),
            quiet_hours_end=str(data.get("quietHoursEnd", d.quiet_hours_end)),
            work_hours_enabled=bool(data.get("workHoursEnabled", d.work_hours_enabled)),
            work_hours_start=str(data.get("workHoursStart", d.work_hours_start)),
            work_hours_end=str(data.get("workHoursEnd", d.work_hours_end)),
            work_days=list(data.get("workDays", d.work_days) or []),
            weekend_mode=bool(data.get("weekendMode", d.weekend_mode)),
            weekend_multiplier=_as_float(data.get("weekendMultiplier"), d.weekend_multiplier),
        )

    def to_dict(self) -> dict:
        return {
            "quietHoursEnabled": self.quiet_hours_enabled,
            "quietHoursStart": self.quiet_hours_start,
            "quietHoursEnd": self.quiet_hours_end,
            "workHoursEnabled": self.work_hours_enabled,
            "workHoursStart": self.work_hours_start,
            "workHoursEnd": self.work_hours_end,
            "workDays": list(self.work_days),
            "weekendMode": self.weekend_mode,
            "weekendMultiplier": self.weekend_multiplier,
        }


@dataclass
class ScheduleRule:
    id: str
    start_time: str = "09:00"
    end_time: str = "17:00"
    days: List[int] = field(default_factory=lambda: [1, 2, 3, 4, 5])
    action: Optional[RuleAction] = RuleAction.SUPPRESS
    threshold_multiplier: float = 1.0
    enabled: bool = True
    name: str = "Custom Schedule"
    type: str = "custom"

    @classmethod
    def from_dict(cls, data: dict) -> "ScheduleRule":
        days = data.get("days", [1, 2, 3, 4, 5])
        return cls(
            id=str(data.get("id", "")),
            start_time=str(data.get("startTime", "09:00")),
            end_time=str(data.get("endTime", "17:00")),
            days=list(days) if isinstance(days, (list, tuple)) else [],
            action=RuleAction.parse(data.get("action", RuleAction.SUPPRESS.value)),
            threshold_multiplier=_as_float(data.get("thresholdMultiplier"), 1.0),
            enabled=bool(data.get("enabled", True)),
            name=str(data.get("name", "Custom Schedule")),
            type=str(data.get("type", "custom")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "days": list(self.days),
            "action": self.action.value if self.action else None,
            "thresholdMultiplier": self.threshold_multiplier,
            "enabled": self.enabled,
        }


@dataclass
class ScheduleConfig:
    enabled: bool = True
    quick_settings: QuickSettings = field(default_factory=QuickSettings)
    rules: List[ScheduleRule] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ScheduleConfig":
        data = data or {}
        raw_rules = data.get("rules", data.get("schedules", [])) or []
        rules = [ScheduleRule.from_dict(r) for r in raw_rules if isinstance(r, dict)]
        return cls(
            enabled=bool(data.get("enabled", True)),
            quick_settings=QuickSettings.from_dict(data.get("quickSettings", {})),
            rules=rules,
        )

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "quickSettings": self.quick_settings.to_dict(),
            "rules": [r.to_dict() for r in self.rules],
        }


# ---------------------------------------------------------------------------
#   Tiers / interventions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Tier:
    name: str
    min_elapsed: int
    interval: int


@dataclass(frozen=True)
class TierMatch:
    tier: str
    interval: int
    rank: int


@dataclass
class InterventionState:
    last_intervention_time: int = 0
    last_intervention_domain: Optional[str] = None
    snooze_until: int = 0

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "InterventionState":
        data = data or {}
        return cls(
            last_intervention_time=int(data.get("lastInterventionTime") or 0),
            last_intervention_domain=data.get("lastInterventionDomain"),
            snooze_until=int(data.get("snoozeUntil") or 0),
        )

    def to_dict(self) -> dict:
        return {
            "lastInterventionTime": self.last_intervention_time,
            "lastInterventionDomain": self.last_intervention_domain,
            "snoozeUntil": self.snooze_until,
        }


class Delivery(str, Enum):
    OVERLAY = "overlay"
    NOTIFICATION = "notification"
    NONE = "none"


@dataclass
class InterventionDecision:
    domain: str
    tab_id: Optional[int]
    elapsed: int
    tier: str
    interval: int
    delivered: Delivery = Delivery.NONE


# ---------------------------------------------------------------------------
#   Goals
# ---------------------------------------------------------------------------

class GoalType(str, Enum):
    DAILY_LIMIT = "dailyLimit"
    SITE_LIMIT = "siteLimit"
    WEEKLY_LIMIT = "weeklyLimit"

    @classmethod
    def parse(cls, value) -> Optional["GoalType"]:
        aliases = {
            "daily_limit": cls.DAILY_LIMIT,
            "site_limit": cls.SITE_LIMIT,
            "weekly_limit": cls.WEEKLY_LIMIT,
        }
        if isinstance(value, cls):
            return value
        if value in aliases:
            return aliases[value]
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass
class Goal:
    id: str
    type: Optional[GoalType] = GoalType.DAILY_LIMIT
    target: float = DEFAULT_GOAL_TARGET_MIN
    domain: Optional[str] = None
    notify_at: List[float] = field(default_factory=lambda: list(DEFAULT_NOTIFY_AT))
    enabled: bool = True
    name: str = "Daily Limit"

    @property
    def target_ms(self) -> int:
        return int(self.target * 60 * 1000)

    @classmethod
    def from_dict(cls, data: dict) -> "Goal":
        notify_at = data.get("notifyAt")
        if not isinstance(notify_at, (list, tuple)) or not notify_at:
            notify_at = list(DEFAULT_NOTIFY_AT)
        return cls(
            id=str(data.get("id", "")),
            type=GoalType.parse(data.get("type", GoalType.DAILY_LIMIT.value)),
            target=_as_float(data.get("target"), DEFAULT_GOAL_TARGET_MIN),
            domain=data.get("domain") or None,
            notify_at=list(notify_at),
            enabled=bool(data.get("enabled", True)),
            name=str(data.get("name", "Daily Limit")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value if self.type else None,
            "target": self.target,
            "domain": self.domain,
            "notifyAt": list(self.notify_at),
            "enabled": self.enabled,
            "name": self.name,
        }


@dataclass
class GoalProgress:
    goal_id: str
    goal_name: str
    current_ms: int
    target_ms: int
    percentage: float
    remaining_ms: int
    exceeded: bool


@dataclass
class GoalNotification:
    goal_id: str
    goal_name: str
    threshold: float
    percentage: float
    exceeded: bool
    message: str


def _as_float(value, default: float) -> float:
    try:
        return float(value) if value is not None else float(default)
    except (TypeError, ValueError):
        return float(default)
