from datetime import datetime, timedelta

import pytest

from shameclock.services.runtime import ShameClockRuntime
from shameclock.storage.settings_repo import SettingsRepository
from shameclock.core.errors import PersistenceError
from shameclock.core.utils import extract_domain


MINUTE = 60 * 1000


class FakeClock:
    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value


class FakeSiteMatcher:
    def __init__(self, domains=("youtube.com", "twitter.com", "reddit.com")):
        self.domains = set(domains)

    def is_tracked_site(self, url):
        domain = extract_domain(url)
        if domain in self.domains:
            return {"pattern": domain}
        return None


class FakeTabHost:
    def __init__(self):
        self.tabs = {}
        self.active_id = None

    def open(self, tab_id, url, active=True):
        self.tabs[tab_id] = url
        if active:
            self.active_id = tab_id

    def get_tab_url(self, tab_id):
        return self.tabs.get(tab_id)

    def query_active_tab(self, window_id=None):
        if self.active_id is None:
            return None
        return self.active_id, self.tabs.get(self.active_id)


class FakePresenter:
    def __init__(self, overlay_ok=True):
        self.overlay_ok = overlay_ok
        self.overlays = []
        self.notifications = []

    def attempt_overlay_delivery(self, tab_id, domain, elapsed):
        self.overlays.append((tab_id, domain, elapsed))
        return self.overlay_ok

    def show_system_notification(self, title, body, domain):
        self.notifications.append((title, body, domain))
        return f"n{len(self.notifications)}"


class FlakyStore(SettingsRepository):
    """Store whose writes fail while ``failing`` is set."""

    def __init__(self):
        super().__init__(":memory:")
        self.failing = False
        self.writes = 0

    def set_value(self, key, value):
        self.writes += 1
        if self.failing:
            raise PersistenceError("QuotaExceeded: storage is full", key=key)
        super().set_value(key, value)


@pytest.fixture
def clock():
    # Wednesday
    return FakeClock(datetime(2026, 1, 14, 10, 0, 0))


@pytest.fixture
def store():
    repo = SettingsRepository(":memory:")
    yield repo
    repo.close()


@pytest.fixture
def site_matcher():
    return FakeSiteMatcher()


@pytest.fixture
def tab_host():
    return FakeTabHost()


@pytest.fixture
def presenter():
    return FakePresenter()


@pytest.fixture
def runtime(store, site_matcher, tab_host, presenter, clock):
    return ShameClockRuntime(
        store, site_matcher, tab_host, presenter, clock=clock, retry_sleep=lambda s: None
    )
