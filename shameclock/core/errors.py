from __future__ import annotations

import logging
import time
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, TypeVar

from shameclock.config.settings import (
    ERROR_LOG_LIMIT,
    KEY_ERROR_LOG,
    RETRY_ATTEMPTS,
    RETRY_BACKOFF,
    RETRY_DELAY_SEC,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorCategory(str, Enum):
    STORAGE = "storage"
    TRACKING = "tracking"
    SCHEDULE = "schedule"
    PRESENTATION = "presentation"
    UNKNOWN = "unknown"


class ShameClockError(Exception):
    category = ErrorCategory.UNKNOWN


class PersistenceError(ShameClockError):
    category = ErrorCategory.STORAGE

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


USER_FRIENDLY_MESSAGES = {
    "storage_quota_exceeded": "Storage is full. Please clear some data in Settings.",
    "storage_access_denied": "Cannot access storage. Please check permissions.",
    "tracking_permission_denied": "Cannot track this site. Permission denied.",
    "unknown_error": "Something went wrong. Please try again.",
}


def user_friendly_message(error: BaseException | str, category: ErrorCategory = ErrorCategory.UNKNOWN) -> str:
    text = str(error).lower()

    if "quota" in text or "full" in text:
        return USER_FRIENDLY_MESSAGES["storage_quota_exceeded"]
    if "permission" in text or "denied" in text or "readonly" in text:
        if category == ErrorCategory.STORAGE:
            return USER_FRIENDLY_MESSAGES["storage_access_denied"]
        return USER_FRIENDLY_MESSAGES["tracking_permission_denied"]
    return USER_FRIENDLY_MESSAGES["unknown_error"]


def with_retry(
    operation: Callable[[], T],
    *,
    attempts: int = RETRY_ATTEMPTS,
    delay: float = RETRY_DELAY_SEC,
    backoff: float = RETRY_BACKOFF,
    category: ErrorCategory = ErrorCategory.STORAGE,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Runs ``operation`` up to ``attempts + 1`` times, sleeping ``delay``
    (multiplied by ``backoff`` after each failure) between tries.
    The last error is logged and re-raised.
    """
    current_delay = delay
    last_error: Optional[PersistenceError] = None

    for attempt in range(attempts + 1):
        try:
            return operation()
        except PersistenceError as e:
            last_error = e
            if attempt < attempts:
                logger.warning(
                    "[%s] attempt %d/%d failed: %s", category.value, attempt + 1, attempts, e
                )
                sleep(current_delay)
                current_delay *= backoff

    logger.error("[%s] giving up after %d retries: %s", category.value, attempts, last_error)
    raise last_error


class ErrorLog:
    """Bounded, newest-first error ring kept in the key/value store."""

    def __init__(self, store, limit: int = ERROR_LOG_LIMIT, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.limit = limit
        self.clock = clock

    def record(self, error: BaseException, category: ErrorCategory, context: Optional[dict] = None) -> dict:
        entry = {
            "timestamp": self.clock().isoformat(),
            "message": str(error),
            "category": category.value,
            "context": context or {},
        }
        try:
            log = self.store.get_value(KEY_ERROR_LOG) or []
            log.insert(0, entry)
            self.store.set_value(KEY_ERROR_LOG, log[: self.limit])
        except PersistenceError as e:
            logger.error("Failed to record error entry: %s", e)
        return entry

    def entries(self) -> list:
        try:
            return self.store.get_value(KEY_ERROR_LOG) or []
        except PersistenceError:
            return []

    def clear(self) -> None:
        self.store.set_value(KEY_ERROR_LOG, [])
