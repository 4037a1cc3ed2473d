from __future__ import annotations

from typing import Dict, Iterable

from shameclock.config.settings import KEY_TIME_DATA


class LedgerRepository:
    """
    ``timeData`` record: ``{day_key: {domain: ms}}``.

    Writes re-read the stored record and apply only their own change, so
    days/domains written by other collaborators survive.
    """

    def __init__(self, store, key: str = KEY_TIME_DATA):
        self.store = store
        self.key = key

    def load(self) -> Dict[str, Dict[str, int]]:
        data = self.store.get_value(self.key)
        if not isinstance(data, dict):
            return {}
        return data

    def get_day(self, day: str) -> Dict[str, int]:
        day_data = self.load().get(day) or {}
        return {str(k): int(v or 0) for k, v in day_data.items()}

    def get_days(self, days: Iterable[str]) -> Dict[str, Dict[str, int]]:
        data = self.load()
        out: Dict[str, Dict[str, int]] = {}
        for day in days:
            day_data = data.get(day) or {}
            out[day] = {str(k): int(v or 0) for k, v in day_data.items()}
        return out

    def add(self, day: str, domain: str, ms: int) -> int:
        """Adds ``ms`` to ``[day][domain]`` and returns the new total."""
        data = self.load()
        day_data = dict(data.get(day) or {})
        total = int(day_data.get(domain, 0) or 0) + max(0, int(ms))
        day_data[domain] = total
        data[day] = day_data
        self.store.set_value(self.key, data)
        return total

    def prune_before(self, cutoff_day: str) -> int:
        data = self.load()
        stale = [k for k in data if k < cutoff_day]
        if not stale:
            return 0
        for k in stale:
            data.pop(k, None)
        self.store.set_value(self.key, data)
        return len(stale)
