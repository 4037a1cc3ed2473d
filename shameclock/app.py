from __future__ import annotations

from typing import Optional

from shameclock.config.settings import DB_PATH
from shameclock.core.logging_setup import setup_logging
from shameclock.services.background_worker import BackgroundWorker
from shameclock.services.runtime import ShameClockRuntime
from shameclock.storage.settings_repo import SettingsRepository


def start(site_matcher, tab_host, presenter, db_path: Optional[str] = None) -> BackgroundWorker:
    """
    Entry point for a host process: opens the store, wires the runtime and
    starts the polling thread. Host triggers go to
    ``worker.runtime.tab_events`` and requests to ``worker.runtime.commands``.
    """
    logger = setup_logging()
    logger.info("Shame Clock starting")

    store = SettingsRepository(db_path or DB_PATH)
    runtime = ShameClockRuntime(store, site_matcher, tab_host, presenter)

    worker = BackgroundWorker(runtime)
    worker.start()
    return worker
