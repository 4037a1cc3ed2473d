from datetime import date, datetime, timedelta
from typing import Optional
from urllib.parse import urlsplit


def now() -> datetime:
    return datetime.now()


def to_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


def day_key(dt: datetime | date) -> str:
    return dt.strftime("%Y-%m-%d")


def day_keys_back(dt: datetime, days: int) -> list[str]:
    """Day keys for ``dt`` and the ``days - 1`` calendar days before it."""
    return [day_key(dt - timedelta(days=i)) for i in range(days)]


def js_weekday(dt: datetime) -> int:
    # 0 = Sunday ... 6 = Saturday
    return (dt.weekday() + 1) % 7


def extract_domain(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    parts = urlsplit(url if "://" in url else f"http://{url}")
    host = (parts.hostname or "").lower()
    if not host:
        return None
    if host.startswith("www."):
        host = host[4:]
    return host


def format_duration(ms: int) -> str:
    if ms is None or ms < 0:
        ms = 0

    seconds = int(ms) // 1000
    minutes = seconds // 60
    hours = minutes // 60

    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"
