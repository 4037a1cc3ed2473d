import json
import sqlite3
import threading
from pathlib import Path

from shameclock.core.errors import PersistenceError


class SettingsRepository:
    """
    Key/value store for opaque JSON records.

    Every record is written whole; callers merge fields before ``set_value``.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        try:
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open store {self.db_path}: {e}") from e
        self.conn.row_factory = sqlite3.Row
        self._ensure_table()

    def _ensure_table(self):
        with self._lock:
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
            self.conn.commit()

    def get_value(self, key: str, default=None):
        try:
            with self._lock:
                cur = self.conn.execute("SELECT value FROM settings WHERE key = ?", (key,))
                row = cur.fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Read failed for '{key}': {e}", key=key) from e
        if not row:
            return default
        try:
            return json.loads(row["value"])
        except ValueError:
            return row["value"]

    def set_value(self, key: str, value) -> None:
        as_json = json.dumps(value)
        try:
            with self._lock:
                self.conn.execute("""
                    INSERT OR REPLACE INTO settings (key, value)
                    VALUES (?, ?)
                """, (key, as_json))
                self.conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Write failed for '{key}': {e}", key=key) from e

    def remove(self, key: str) -> None:
        try:
            with self._lock:
                self.conn.execute("DELETE FROM settings WHERE key = ?", (key,))
                self.conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Delete failed for '{key}': {e}", key=key) from e

    def all(self) -> dict:
        try:
            with self._lock:
                rows = self.conn.execute("SELECT key, value FROM settings").fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Read failed: {e}") from e
        out = {}
        for row in rows:
            try:
                out[row["key"]] = json.loads(row["value"])
            except ValueError:
                out[row["key"]] = row["value"]
        return out

    def close(self) -> None:
        with self._lock:
            self.conn.close()
