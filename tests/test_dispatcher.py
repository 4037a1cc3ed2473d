from datetime import datetime

import pytest

from shameclock.core.errors import PersistenceError
from shameclock.core.models import Delivery, GoalType

from conftest import MINUTE, FakePresenter


URL = "https://www.youtube.com/watch?v=abc"


def seed_today(runtime, ms, domain="youtube.com", day="2026-01-14"):
    runtime.store.set_value("timeData", {day: {domain: ms}})


@pytest.fixture
def medium_only(runtime):
    runtime.settings.update({
        "thresholds": {"medium": 15 * MINUTE},
        "intervals": {"medium": 10 * MINUTE},
    })
    return runtime


@pytest.fixture
def on_youtube(tab_host):
    tab_host.open(1, URL)
    return tab_host


def test_scenario_a_fires_medium_tier(medium_only, on_youtube, presenter):
    seed_today(medium_only, 16 * MINUTE)
    result = medium_only.dispatcher.tick()

    assert result.decision is not None
    assert result.decision.tier == "medium"
    assert result.decision.domain == "youtube.com"
    assert result.decision.delivered == Delivery.OVERLAY
    assert presenter.overlays == [(1, "youtube.com", 16 * MINUTE)]


def test_scenario_b_cooldown_blocks_second_fire(medium_only, on_youtube, presenter, clock):
    seed_today(medium_only, 16 * MINUTE)
    prior = int(clock().timestamp() * 1000) - 4 * MINUTE
    medium_only.cooldown.record("youtube.com", prior)

    result = medium_only.dispatcher.tick()
    assert result.decision is None
    assert result.stopped_at == "cooldown"
    assert presenter.overlays == []


def test_fires_again_after_interval(medium_only, on_youtube, clock):
    seed_today(medium_only, 16 * MINUTE)
    assert medium_only.dispatcher.tick().decision is not None

    clock.advance(minutes=9)
    assert medium_only.dispatcher.tick().decision is None
    clock.advance(minutes=1)
    assert medium_only.dispatcher.tick().decision is not None


def test_scenario_c_quiet_hours_suppress_popup_not_goals(runtime, on_youtube, presenter, clock):
    clock.set(datetime(2026, 1, 14, 23, 0))
    runtime.schedule_repo.update_quick_settings(quiet_hours_enabled=True)
    runtime.goals_repo.add_goal(GoalType.DAILY_LIMIT, target=60, notify_at=[100], name="Daily")
    seed_today(runtime, 120 * MINUTE)

    result = runtime.dispatcher.tick()
    assert result.decision is None
    assert result.stopped_at == "suppressed"
    assert [n.threshold for n in result.goal_notifications] == [100]
    assert presenter.overlays == []
    assert presenter.notifications == [("Daily", result.goal_notifications[0].message, "youtube.com")]

    again = runtime.dispatcher.tick()
    assert again.goal_notifications == []


def test_below_min_time_skips_popup_but_checks_goals(runtime, on_youtube, presenter):
    runtime.goals_repo.add_goal(GoalType.DAILY_LIMIT, target=4, notify_at=[50])
    seed_today(runtime, 3 * MINUTE)

    result = runtime.dispatcher.tick()
    assert result.stopped_at == "min_time"
    assert len(result.goal_notifications) == 1


def test_multiplier_scales_min_time_only(runtime, on_youtube, clock):
    runtime.settings.update({"min_time_before_popup_ms": 20 * MINUTE})
    seed_today(runtime, 16 * MINUTE)
    assert runtime.dispatcher.tick().stopped_at == "min_time"

    # Work hours halve the baseline to 10m; the 15m tier boundary is unchanged
    runtime.schedule_repo.update_quick_settings(work_hours_enabled=True)
    result = runtime.dispatcher.tick()
    assert result.decision is not None
    assert result.decision.tier == "medium"


def test_no_tier_below_lowest_boundary(runtime, on_youtube):
    seed_today(runtime, 10 * MINUTE)
    assert runtime.dispatcher.tick().stopped_at == "no_tier"


def test_paused_skips_everything(runtime, on_youtube, presenter):
    runtime.goals_repo.add_goal(GoalType.DAILY_LIMIT, target=1)
    seed_today(runtime, 90 * MINUTE)
    runtime.settings.update({"tracking_paused": True})

    result = runtime.dispatcher.tick()
    assert result.stopped_at == "paused"
    assert result.goal_notifications == []
    assert presenter.notifications == []


def test_blocked_window_skips_tick(runtime, on_youtube):
    runtime.schedule_repo.add_rule("09:00", "11:00", days=[3], action="blockTracking")
    seed_today(runtime, 90 * MINUTE)
    assert runtime.dispatcher.tick().stopped_at == "blocked"


def test_untracked_site_stops(runtime, tab_host):
    tab_host.open(2, "https://docs.python.org/3/")
    assert runtime.dispatcher.tick().stopped_at == "untracked"


def test_snooze_blocks_popup(runtime, on_youtube, clock):
    seed_today(runtime, 90 * MINUTE)
    runtime.cooldown.snooze(int(clock().timestamp() * 1000), 10 * MINUTE)
    assert runtime.dispatcher.tick().stopped_at == "cooldown"


def test_popup_disabled(runtime, on_youtube):
    runtime.settings.update({"popup_enabled": False})
    seed_today(runtime, 90 * MINUTE)
    result = runtime.dispatcher.tick()
    assert result.decision is None
    assert result.stopped_at == "popup_disabled"


def test_overlay_failure_falls_back_to_notification(runtime, on_youtube, presenter):
    presenter.overlay_ok = False
    seed_today(runtime, 45 * MINUTE)
    result = runtime.dispatcher.tick()
    assert result.decision.delivered == Delivery.NOTIFICATION
    assert result.decision.tier == "high"
    title, body, domain = presenter.notifications[0]
    assert title == "Time to refocus!"
    assert "youtube.com" in body


class BrokenPresenter(FakePresenter):
    def attempt_overlay_delivery(self, tab_id, domain, elapsed):
        raise RuntimeError("no receiving end")

    def show_system_notification(self, title, body, domain):
        raise RuntimeError("notifications unavailable")


def test_delivery_failures_are_not_fatal(runtime, on_youtube, clock):
    runtime.dispatcher.presenter = BrokenPresenter()
    seed_today(runtime, 45 * MINUTE)
    result = runtime.dispatcher.tick()
    assert result.decision.delivered == Delivery.NONE
    # State was recorded before delivery
    assert runtime.cooldown.state.last_intervention_domain == "youtube.com"


def test_failing_goal_step_does_not_block_popup_or_next_tick(runtime, on_youtube, monkeypatch):
    seed_today(runtime, 45 * MINUTE)

    def boom():
        raise RuntimeError("goal store corrupt")

    monkeypatch.setattr(runtime.goal_monitor, "check", boom)
    result = runtime.dispatcher.tick()
    assert result.decision is not None
    assert any(e.startswith("goals:") for e in result.errors)

    monkeypatch.undo()
    assert runtime.dispatcher.tick().skipped is False


def test_storage_failure_becomes_notice(runtime, on_youtube, monkeypatch):
    def fail(domain):
        raise PersistenceError("QuotaExceeded")

    monkeypatch.setattr(runtime.tracker, "get_elapsed_today", fail)
    result = runtime.dispatcher.tick()
    assert result.stopped_at == "elapsed"
    assert result.notices == ["Storage is full. Please clear some data in Settings."]
    assert runtime.error_log.entries()[0]["context"] == {"step": "elapsed"}


class ReentrantPresenter(FakePresenter):
    def __init__(self, dispatcher_ref):
        super().__init__()
        self.dispatcher_ref = dispatcher_ref
        self.inner = None

    def attempt_overlay_delivery(self, tab_id, domain, elapsed):
        self.inner = self.dispatcher_ref().tick()
        return True


def test_overlapping_tick_is_skipped(runtime, on_youtube):
    presenter = ReentrantPresenter(lambda: runtime.dispatcher)
    runtime.dispatcher.presenter = presenter
    seed_today(runtime, 45 * MINUTE)

    outer = runtime.dispatcher.tick()
    assert outer.decision is not None
    assert presenter.inner.skipped is True
