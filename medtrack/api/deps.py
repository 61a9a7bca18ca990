# medtrack/api/deps.py
from functools import lru_cache

from fastapi import HTTPException

from medtrack.core.config import MEDTRACK_STORAGE
from medtrack.core.errors import NotFoundError, ValidationError
from medtrack.db.db_config import get_sqlite_connection
from medtrack.db.kv_store import InMemoryKeyValueStore, SqliteKeyValueStore
from medtrack.services.dose_store import DoseStore
from medtrack.services.ids import CounterIdGenerator
from medtrack.services.notifications import InMemoryNotificationBackend, NotificationScheduler
from medtrack.services.tracker import MedicationTracker
from medtrack.utils.dates import SystemClock


@lru_cache(maxsize=1)
def get_tracker() -> MedicationTracker:
    if MEDTRACK_STORAGE == "memory":
        kv = InMemoryKeyValueStore()
    else:
        kv = SqliteKeyValueStore(get_sqlite_connection())

    clock = SystemClock()
    ids = CounterIdGenerator(kv)
    store = DoseStore(kv, ids, clock)
    scheduler = NotificationScheduler(InMemoryNotificationBackend(), clock)
    return MedicationTracker(store, ids, scheduler, clock)


def as_http_error(e: Exception) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))
