from __future__ import annotations

from pathlib import Path
import sys


def app_root() -> Path:

    base = getattr(sys, "_MEIPASS", None)
    if base is not None:
        return Path(base)

    return Path(__file__).resolve().parent.parent.parent


def db_path() -> Path:

    return data_dir() / "shameclock.sqlite3"


def data_dir() -> Path:

    return app_root() / "data"


def logs_dir() -> Path:

    return app_root() / "logs"


def log_file() -> Path:

    return logs_dir() / "shameclock.log"


def ensure_logs_dir() -> Path:

    d = logs_dir()
    d.mkdir(parents=True, exist_ok=True)
    return d
