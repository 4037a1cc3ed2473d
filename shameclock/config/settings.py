from shameclock.core.paths import db_path

DB_PATH = str(db_path())

# ---------- Cadence ----------
TICK_INTERVAL_SEC = 30
FLUSH_INTERVAL_SEC = 60
MAINTENANCE_INTERVAL_SEC = 60 * 60

# ---------- Retention ----------
RETENTION_DAYS = 30
GOAL_HISTORY_LIMIT = 100
ERROR_LOG_LIMIT = 100

# ---------- Interventions ----------
MINUTE_MS = 60 * 1000

DEFAULT_MIN_TIME_BEFORE_POPUP_MS = 5 * MINUTE_MS
DEFAULT_POPUP_COOLDOWN_MS = 3 * MINUTE_MS
DEFAULT_SNOOZE_MS = 5 * MINUTE_MS

# Elapsed boundary per tier, ms. "veryHigh" may be None (disabled).
DEFAULT_THRESHOLDS = {
    "medium": 15 * MINUTE_MS,
    "high": 30 * MINUTE_MS,
    "veryHigh": 60 * MINUTE_MS,
}

# Repeat interval per tier, ms
DEFAULT_INTERVALS = {
    "medium": 10 * MINUTE_MS,
    "high": 5 * MINUTE_MS,
    "veryHigh": 3 * MINUTE_MS,
}

TIER_ORDER = ["medium", "high", "veryHigh"]

# ---------- Schedule ----------
WORK_HOURS_FACTOR = 0.5
MIN_MULTIPLIER = 0.1

# ---------- Goals ----------
DEFAULT_NOTIFY_AT = [50, 80, 100]
DEFAULT_GOAL_TARGET_MIN = 60
WEEKLY_WINDOW_DAYS = 7

# ---------- Persistence retry ----------
RETRY_ATTEMPTS = 3
RETRY_DELAY_SEC = 1.0
RETRY_BACKOFF = 2.0

# ---------- Storage keys ----------
KEY_TIME_DATA = "timeData"
KEY_SCHEDULER = "schedulerConfig"
KEY_GOALS = "userGoals"
KEY_INTERVENTION = "interventionState"
KEY_CONFIG = "shameClockConfig"
KEY_ERROR_LOG = "errorLog"
KEY_DAILY_RESET = "dailyReset"
