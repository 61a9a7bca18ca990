# medtrack/db/kv_store.py
import sqlite3
import threading
from typing import Dict, Iterable, Optional


class KeyValueStore:
    """
    String key -> string value storage. Collections are stored whole, as JSON
    text, under fixed keys; there are no partial updates at this boundary.
    """

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def multi_remove(self, keys: Iterable[str]) -> None:
        raise NotImplementedError


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def multi_remove(self, keys: Iterable[str]) -> None:
        for k in keys:
            self._data.pop(k, None)


class SqliteKeyValueStore(KeyValueStore):
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self._lock = threading.Lock()
        with self._lock:
            self.conn.execute("CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)")
            self.conn.commit()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            row = self.conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self.conn.execute(
                "INSERT INTO kv (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )
            self.conn.commit()

    def multi_remove(self, keys: Iterable[str]) -> None:
        with self._lock:
            self.conn.executemany("DELETE FROM kv WHERE key = ?", [(k,) for k in keys])
            self.conn.commit()
