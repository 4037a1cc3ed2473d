from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from shameclock.config.settings import MIN_MULTIPLIER, WORK_HOURS_FACTOR
from shameclock.core.models import RuleAction, ScheduleConfig, ScheduleRule
from shameclock.core.utils import js_weekday

logger = logging.getLogger(__name__)


# ---------- time windows ----------

def parse_hhmm(value) -> Optional[int]:
    """``"HH:MM"`` -> minutes after midnight, ``None`` if malformed."""
    if not isinstance(value, str):
        return None
    parts = value.strip().split(":")
    if len(parts) != 2:
        return None
    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        return None
    return hours * 60 + minutes


def is_within_window(start: str, end: str, now: datetime) -> bool:
    """
    ``[start, end)`` on the clock; ``start > end`` wraps past midnight.
    Malformed bounds are never active.
    """
    start_min = parse_hhmm(start)
    end_min = parse_hhmm(end)
    if start_min is None or end_min is None:
        return False

    current = now.hour * 60 + now.minute
    if start_min > end_min:
        return current >= start_min or current < end_min
    return start_min <= current < end_min


def _window_started_at(start: str, now: datetime) -> Optional[datetime]:
    minutes = parse_hhmm(start)
    if minutes is None:
        return None
    started = now.replace(hour=minutes // 60, minute=minutes % 60, second=0, microsecond=0)
    if started > now:
        started -= timedelta(days=1)
    return started


def _valid_days(days) -> bool:
    if not isinstance(days, (list, tuple)):
        return False
    return all(isinstance(d, int) and not isinstance(d, bool) and 0 <= d <= 6 for d in days)


def is_rule_active(rule: ScheduleRule, now: datetime) -> bool:
    if not rule.enabled or rule.action is None:
        return False
    if not _valid_days(rule.days):
        return False
    if js_weekday(now) not in rule.days:
        return False
    return is_within_window(rule.start_time, rule.end_time, now)


def is_weekend(now: datetime) -> bool:
    return js_weekday(now) in (0, 6)


# ---------- multiplier pipeline ----------

def _weekend_stage(config: ScheduleConfig, now: datetime) -> float:
    qs = config.quick_settings
    if qs.weekend_mode and is_weekend(now):
        return qs.weekend_multiplier
    return 1.0


def _work_hours_stage(config: ScheduleConfig, now: datetime) -> float:
    return WORK_HOURS_FACTOR if _work_hours_active(config, now) else 1.0


def _custom_rules_stage(config: ScheduleConfig, now: datetime) -> float:
    factor = 1.0
    for rule in config.rules:
        if rule.action == RuleAction.ADJUST_THRESHOLD and is_rule_active(rule, now):
            factor *= rule.threshold_multiplier
    return factor


MULTIPLIER_STAGES: List[Tuple[str, Callable[[ScheduleConfig, datetime], float]]] = [
    ("weekend", _weekend_stage),
    ("work_hours", _work_hours_stage),
    ("custom_rules", _custom_rules_stage),
]


def _work_hours_active(config: ScheduleConfig, now: datetime) -> bool:
    qs = config.quick_settings
    if not qs.work_hours_enabled:
        return False
    if not _valid_days(qs.work_days) or js_weekday(now) not in qs.work_days:
        return False
    return is_within_window(qs.work_hours_start, qs.work_hours_end, now)


def compose_multiplier(config: ScheduleConfig, now: datetime, floor: float = MIN_MULTIPLIER) -> float:
    if not config.enabled:
        return 1.0

    multiplier = 1.0
    for name, stage in MULTIPLIER_STAGES:
        factor = stage(config, now)
        if not math.isfinite(factor) or factor < 0:
            logger.warning("Ignoring invalid %s multiplier %r", name, factor)
            continue
        multiplier *= factor

    return max(floor, multiplier)


class ScheduleModifier:
    """Evaluates schedule rules against a moment in time. Read-only."""

    def __init__(self, repo, floor: float = MIN_MULTIPLIER):
        self.repo = repo
        self.floor = floor

    def _config(self) -> ScheduleConfig:
        return self.repo.load()

    # ---------- quick settings ----------

    def is_quiet_hours(self, now: datetime) -> bool:
        config = self._config()
        qs = config.quick_settings
        if not config.enabled or not qs.quiet_hours_enabled:
            return False
        return is_within_window(qs.quiet_hours_start, qs.quiet_hours_end, now)

    def is_work_hours(self, now: datetime) -> bool:
        config = self._config()
        return config.enabled and _work_hours_active(config, now)

    # ---------- rule evaluation ----------

    def is_suppressed(self, now: datetime) -> bool:
        config = self._config()
        if not config.enabled:
            return False
        if self.is_quiet_hours(now):
            return True
        return any(
            rule.action == RuleAction.SUPPRESS and is_rule_active(rule, now)
            for rule in config.rules
        )

    def is_tracking_blocked(self, now: datetime) -> bool:
        config = self._config()
        if not config.enabled:
            return False
        return any(
            rule.action == RuleAction.BLOCK_TRACKING and is_rule_active(rule, now)
            for rule in config.rules
        )

    def tracking_blocked_since(self, now: datetime) -> Optional[datetime]:
        """Start of the earliest active block window, ``None`` when not blocked."""
        config = self._config()
        if not config.enabled:
            return None
        starts = [
            _window_started_at(rule.start_time, now)
            for rule in config.rules
            if rule.action == RuleAction.BLOCK_TRACKING and is_rule_active(rule, now)
        ]
        starts = [s for s in starts if s is not None]
        return min(starts) if starts else None

    def get_threshold_multiplier(self, now: datetime) -> float:
        return compose_multiplier(self._config(), now, self.floor)

    # ---------- informational ----------

    def next_quiet_hours_change(self, now: datetime) -> Optional[Tuple[datetime, str]]:
        config = self._config()
        qs = config.quick_settings
        if not config.enabled or not qs.quiet_hours_enabled:
            return None

        active = self.is_quiet_hours(now)
        boundary = qs.quiet_hours_end if active else qs.quiet_hours_start
        minutes = parse_hhmm(boundary)
        if minutes is None:
            return None

        nxt = now.replace(hour=minutes // 60, minute=minutes % 60, second=0, microsecond=0)
        if nxt <= now:
            nxt += timedelta(days=1)
        return nxt, ("quiet_hours_end" if active else "quiet_hours_start")

    def summary(self, now: datetime) -> dict:
        config = self._config()
        return {
            "enabled": config.enabled,
            "quietHoursActive": self.is_quiet_hours(now),
            "workHoursActive": self.is_work_hours(now),
            "isWeekend": is_weekend(now),
            "currentMultiplier": self.get_threshold_multiplier(now),
            "popupsSuppressed": self.is_suppressed(now),
            "trackingBlocked": self.is_tracking_blocked(now),
            "activeSchedules": sum(1 for r in config.rules if r.enabled),
            "totalSchedules": len(config.rules),
        }
