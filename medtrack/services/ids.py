# medtrack/services/ids.py
import logging
import threading
import time

from medtrack.db.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

LAST_ID_KEY = "@last_id"


class IdGenerator:
    def next_id(self) -> int:
        raise NotImplementedError

    def ensure_at_least(self, last_id: int) -> None:
        """Make the next id greater than `last_id`."""
        raise NotImplementedError


class SequenceIdGenerator(IdGenerator):
    """In-memory counter. Predictable ids for tests."""

    def __init__(self, start: int = 1):
        self._last = start - 1
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            self._last += 1
            return self._last

    def ensure_at_least(self, last_id: int) -> None:
        with self._lock:
            self._last = max(self._last, int(last_id))


class CounterIdGenerator(IdGenerator):
    """
    Single counter shared by medications and dose entries, persisted under
    its own key. If the counter cannot be read or written the id falls back
    to the current time in milliseconds. Two fallbacks in the same
    millisecond collide; that only happens while storage is failing.
    """

    def __init__(self, kv: KeyValueStore, key: str = LAST_ID_KEY):
        self.kv = kv
        self.key = key
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            try:
                raw = self.kv.get_item(self.key)
                new_id = int(raw) + 1 if raw else 1
                self.kv.set_item(self.key, str(new_id))
                return new_id
            except Exception as e:
                fallback = int(time.time() * 1000)
                logger.warning("id counter unavailable (%s); using timestamp id %s", e, fallback)
                return fallback

    def ensure_at_least(self, last_id: int) -> None:
        with self._lock:
            raw = self.kv.get_item(self.key)
            current = int(raw) if raw else 0
            if current < last_id:
                self.kv.set_item(self.key, str(last_id))
                logger.info("id counter advanced from %s to %s", current, last_id)
