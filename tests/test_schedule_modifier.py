from datetime import datetime

import pytest

from shameclock.core.models import RuleAction, ScheduleRule
from shameclock.core.schedule_modifier import (
    MULTIPLIER_STAGES,
    ScheduleModifier,
    is_within_window,
    parse_hhmm,
)
from shameclock.storage.schedule_repo import ScheduleRepository

WED = datetime(2026, 1, 14, 12, 0)
SAT = datetime(2026, 1, 17, 12, 0)
ALL_DAYS = [0, 1, 2, 3, 4, 5, 6]


@pytest.fixture
def repo(store):
    return ScheduleRepository(store)


@pytest.fixture
def modifier(repo):
    return ScheduleModifier(repo)


def test_parse_hhmm():
    assert parse_hhmm("08:30") == 510
    assert parse_hhmm("24:00") is None
    assert parse_hhmm("8") is None
    assert parse_hhmm("ab:cd") is None
    assert parse_hhmm(None) is None


@pytest.mark.parametrize(
    "hour,minute,expected",
    [(23, 30, True), (3, 0, True), (12, 0, False), (22, 0, True), (8, 0, False)],
)
def test_overnight_window(hour, minute, expected):
    assert is_within_window("22:00", "08:00", datetime(2026, 1, 14, hour, minute)) is expected


def test_same_day_window_is_half_open():
    assert is_within_window("09:00", "17:00", datetime(2026, 1, 14, 9, 0))
    assert not is_within_window("09:00", "17:00", datetime(2026, 1, 14, 17, 0))


def test_malformed_window_is_inactive():
    assert not is_within_window("9am", "17:00", WED)


def test_quiet_hours_suppress(repo, modifier):
    repo.update_quick_settings(quiet_hours_enabled=True)
    assert modifier.is_suppressed(datetime(2026, 1, 14, 23, 0))
    assert not modifier.is_suppressed(WED)


def test_suppress_rule_respects_days(repo, modifier):
    repo.add_rule("11:00", "13:00", days=[3], action=RuleAction.SUPPRESS)
    assert modifier.is_suppressed(WED)
    assert not modifier.is_suppressed(SAT)


def test_disabled_rule_is_ignored(repo, modifier):
    rule = repo.add_rule("00:00", "23:59", days=ALL_DAYS, action="suppress")
    repo.update_rule(rule.id, enabled=False)
    assert not modifier.is_suppressed(WED)


def test_legacy_action_names(repo, modifier):
    repo.add_rule("00:00", "23:59", days=ALL_DAYS, action="disable_popups")
    assert modifier.is_suppressed(WED)


def test_invalid_rule_data_fails_closed(store, modifier):
    store.set_value("schedulerConfig", {
        "enabled": True,
        "rules": [
            {"id": "a", "enabled": True, "startTime": "25:00", "endTime": "08:00",
             "days": ALL_DAYS, "action": "suppress"},
            {"id": "b", "enabled": True, "startTime": "00:00", "endTime": "23:59",
             "days": "weekdays", "action": "blockTracking"},
            {"id": "c", "enabled": True, "startTime": "00:00", "endTime": "23:59",
             "days": ALL_DAYS, "action": "explode"},
        ],
    })
    assert not modifier.is_suppressed(WED)
    assert not modifier.is_tracking_blocked(WED)
    assert modifier.get_threshold_multiplier(WED) == 1.0


def test_block_tracking_is_distinct_from_suppress(repo, modifier):
    repo.add_rule("11:00", "13:00", days=ALL_DAYS, action=RuleAction.BLOCK_TRACKING)
    assert modifier.is_tracking_blocked(WED)
    assert not modifier.is_suppressed(WED)


def test_master_switch_disables_everything(repo, modifier):
    repo.update_quick_settings(quiet_hours_enabled=True, weekend_mode=True)
    repo.add_rule("00:00", "23:59", days=ALL_DAYS, action="blockTracking")
    repo.set_enabled(False)
    night = datetime(2026, 1, 17, 23, 0)
    assert not modifier.is_suppressed(night)
    assert not modifier.is_tracking_blocked(night)
    assert modifier.get_threshold_multiplier(night) == 1.0


def test_multiplier_defaults_to_one(modifier):
    assert modifier.get_threshold_multiplier(WED) == 1.0


def test_weekend_multiplier_only_on_weekend(repo, modifier):
    repo.update_quick_settings(weekend_mode=True, weekend_multiplier=1.5)
    assert modifier.get_threshold_multiplier(SAT) == pytest.approx(1.5)
    assert modifier.get_threshold_multiplier(WED) == 1.0


def test_work_hours_halve_threshold(repo, modifier):
    repo.update_quick_settings(work_hours_enabled=True)
    assert modifier.get_threshold_multiplier(WED) == pytest.approx(0.5)
    assert modifier.get_threshold_multiplier(SAT) == 1.0
    assert modifier.is_work_hours(WED)


def test_stages_compose_in_order(repo, modifier):
    repo.update_quick_settings(
        weekend_mode=True, weekend_multiplier=2.0,
        work_hours_enabled=True, work_days=ALL_DAYS,
    )
    repo.add_rule("11:00", "13:00", days=ALL_DAYS, action="adjustThreshold", threshold_multiplier=0.8)
    repo.add_rule("11:00", "13:00", days=ALL_DAYS, action="adjustThreshold", threshold_multiplier=1.5)
    assert [name for name, _ in MULTIPLIER_STAGES] == ["weekend", "work_hours", "custom_rules"]
    assert modifier.get_threshold_multiplier(SAT) == pytest.approx(2.0 * 0.5 * 0.8 * 1.5)


def test_multiplier_has_floor(repo, store):
    repo.update_quick_settings(work_hours_enabled=True, work_days=ALL_DAYS)
    repo.add_rule("00:00", "23:59", days=ALL_DAYS, action="adjustThreshold", threshold_multiplier=0.01)
    assert ScheduleModifier(repo).get_threshold_multiplier(WED) == pytest.approx(0.1)
    assert ScheduleModifier(repo, floor=0.0).get_threshold_multiplier(WED) == pytest.approx(0.005)


def test_next_quiet_hours_change(repo, modifier):
    repo.update_quick_settings(quiet_hours_enabled=True)
    when, action = modifier.next_quiet_hours_change(WED)
    assert action == "quiet_hours_start"
    assert when == datetime(2026, 1, 14, 22, 0)

    when, action = modifier.next_quiet_hours_change(datetime(2026, 1, 14, 23, 0))
    assert action == "quiet_hours_end"
    assert when == datetime(2026, 1, 15, 8, 0)


def test_summary(repo, modifier):
    repo.add_rule("11:00", "13:00", days=ALL_DAYS, action="suppress")
    rule = repo.add_rule("11:00", "13:00", days=ALL_DAYS, action="blockTracking")
    repo.update_rule(rule.id, enabled=False)
    summary = modifier.summary(WED)
    assert summary["popupsSuppressed"] is True
    assert summary["trackingBlocked"] is False
    assert summary["activeSchedules"] == 1
    assert summary["totalSchedules"] == 2


def test_rule_crud(repo):
    rule = repo.add_rule("10:00", "11:00", days=[1], action="suppress", name="Standup")
    assert [r.name for r in repo.list_rules()] == ["Standup"]
    assert repo.update_rule("missing", enabled=False) is None
    assert repo.delete_rule(rule.id) is True
    assert repo.delete_rule(rule.id) is False
    with pytest.raises(ValueError):
        repo.add_rule(action="explode")


def test_rule_round_trips_through_dict():
    rule = ScheduleRule.from_dict({"id": "x", "action": "adjust_threshold", "thresholdMultiplier": "2"})
    assert rule.action == RuleAction.ADJUST_THRESHOLD
    assert rule.threshold_multiplier == 2.0
    assert rule.to_dict()["action"] == "adjustThreshold"


def test_tracking_blocked_since(repo, modifier):
    assert modifier.tracking_blocked_since(WED) is None

    repo.add_rule("11:30", "13:00", days=ALL_DAYS, action=RuleAction.BLOCK_TRACKING)
    repo.add_rule("11:00", "12:30", days=ALL_DAYS, action=RuleAction.BLOCK_TRACKING)
    assert modifier.tracking_blocked_since(WED) == datetime(2026, 1, 14, 11, 0)


def test_overnight_block_started_the_day_before(repo, modifier):
    repo.add_rule("23:00", "02:00", days=ALL_DAYS, action=RuleAction.BLOCK_TRACKING)
    assert modifier.tracking_blocked_since(datetime(2026, 1, 15, 0, 30)) == datetime(2026, 1, 14, 23, 0)
