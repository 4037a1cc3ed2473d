from shameclock.config.settings import KEY_INTERVENTION
from shameclock.core.models import InterventionState


class InterventionStateRepository:

    def __init__(self, store, key: str = KEY_INTERVENTION):
        self.store = store
        self.key = key

    def load(self) -> InterventionState:
        return InterventionState.from_dict(self.store.get_value(self.key))

    def save(self, state: InterventionState) -> None:
        data = self.store.get_value(self.key)
        merged = dict(data) if isinstance(data, dict) else {}
        merged.update(state.to_dict())
        self.store.set_value(self.key, merged)
