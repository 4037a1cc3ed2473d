import copy
import logging

from PyQt6.QtCore import QObject, pyqtSignal

from shameclock.config.settings import (
    DEFAULT_INTERVALS,
    DEFAULT_MIN_TIME_BEFORE_POPUP_MS,
    DEFAULT_POPUP_COOLDOWN_MS,
    DEFAULT_THRESHOLDS,
    KEY_CONFIG,
    RETENTION_DAYS,
)
from shameclock.core.errors import PersistenceError

logger = logging.getLogger(__name__)


DEFAULTS = {
    "popup_enabled": True,
    "tracking_paused": False,
    "paused_at": None,
    "min_time_before_popup_ms": DEFAULT_MIN_TIME_BEFORE_POPUP_MS,
    "popup_cooldown_ms": DEFAULT_POPUP_COOLDOWN_MS,
    "thresholds": dict(DEFAULT_THRESHOLDS),
    "intervals": dict(DEFAULT_INTERVALS),
    "retention_days": RETENTION_DAYS,
}


class SettingsService(QObject):
    """Cached user settings, persisted as one merged record."""

    settings_changed = pyqtSignal(dict)

    def __init__(self, store, key: str = KEY_CONFIG):
        super().__init__()
        self.store = store
        self.key = key

        stored = self.store.get_value(self.key)
        self.cache = copy.deepcopy(DEFAULTS)
        if isinstance(stored, dict):
            self.cache.update(stored)

        # Missing keys are written back once so other readers see the defaults
        if not isinstance(stored, dict) or any(k not in stored for k in DEFAULTS):
            self._persist({})

    def _persist(self, changed: dict) -> None:
        stored = self.store.get_value(self.key)
        merged = dict(stored) if isinstance(stored, dict) else {}
        for k, v in self.cache.items():
            merged.setdefault(k, v)
        merged.update(changed)
        self.store.set_value(self.key, merged)

    def get(self, key, default=None):
        return self.cache.get(key, default)

    def set(self, key: str, value):
        self.update({key: value})

    def update(self, changed: dict) -> None:
        self.cache.update(changed)
        try:
            self._persist(changed)
        except PersistenceError as e:
            # The cache stays authoritative for this process
            logger.error("Failed to persist settings %s: %s", sorted(changed), e)
        self.settings_changed.emit(dict(changed))

    def snapshot(self) -> dict:
        return copy.deepcopy(self.cache)
