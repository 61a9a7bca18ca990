"""
Shared fixtures: everything in memory, ids from 1, clock pinned to
Wednesday 2024-01-10 12:00.
"""

from datetime import date, datetime

import pytest

from medtrack.db.kv_store import InMemoryKeyValueStore
from medtrack.schemas.models import Medication
from medtrack.services.adherence import AdherenceAggregator
from medtrack.services.dose_store import DoseStore
from medtrack.services.ids import SequenceIdGenerator
from medtrack.services.notifications import InMemoryNotificationBackend, NotificationScheduler
from medtrack.services.tracker import MedicationTracker
from medtrack.utils.dates import FixedClock

NOW = datetime(2024, 1, 10, 12, 0)


class RecordingBackend(InMemoryNotificationBackend):
    """Counts every arming attempt; optionally fails the ones `fail_when` picks."""

    def __init__(self, fail_when=None):
        super().__init__()
        self.schedule_calls = []
        self.cancel_calls = []
        self.fail_when = fail_when

    def schedule_trigger(self, identifier, payload, trigger):
        self.schedule_calls.append(identifier)
        if self.fail_when and self.fail_when(identifier, len(self.schedule_calls)):
            raise RuntimeError("notification service unavailable")
        return super().schedule_trigger(identifier, payload, trigger)

    def cancel_trigger(self, identifier):
        self.cancel_calls.append(identifier)
        return super().cancel_trigger(identifier)


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def kv():
    return InMemoryKeyValueStore()


@pytest.fixture
def ids():
    return SequenceIdGenerator()


@pytest.fixture
def store(kv, ids, clock):
    return DoseStore(kv, ids, clock)


@pytest.fixture
def backend():
    return RecordingBackend()


@pytest.fixture
def scheduler(backend, clock):
    return NotificationScheduler(backend, clock, pre_reminder_minutes=15, monthly_lookahead=3)


@pytest.fixture
def aggregator(store, clock):
    return AdherenceAggregator(store, clock)


@pytest.fixture
def tracker(store, ids, scheduler, clock):
    return MedicationTracker(store, ids, scheduler, clock)


@pytest.fixture
def make_medication():
    def _make(**overrides):
        fields = {
            "id": 1,
            "name": "Paracetamol",
            "dosage": "500mg",
            "frequency": "daily",
            "times": ["08:00 AM"],
            "start_date": date(2024, 1, 1),
            "end_date": date(2024, 1, 3),
        }
        fields.update(overrides)
        return Medication(**fields)

    return _make
