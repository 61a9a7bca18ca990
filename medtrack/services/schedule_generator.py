# medtrack/services/schedule_generator.py
import logging
from datetime import date, timedelta
from typing import List, Optional

from medtrack.core.config import DEFAULT_SCHEDULE_DAYS
from medtrack.schemas.models import DoseEntry, Medication
from medtrack.services.ids import IdGenerator
from medtrack.services.recurrence import is_dosing_day
from medtrack.utils.dates import Clock, SystemClock, iter_days

logger = logging.getLogger(__name__)


def schedule_end_date(medication: Medication, default_days: int = DEFAULT_SCHEDULE_DAYS) -> date:
    if medication.end_date is not None:
        return medication.end_date
    return medication.start_date + timedelta(days=default_days)


def expand_schedule(
    medication: Medication,
    id_generator: IdGenerator,
    clock: Optional[Clock] = None,
    default_days: int = DEFAULT_SCHEDULE_DAYS,
) -> List[DoseEntry]:
    """
    One pending entry per (dosing day, time), walking day by day from
    start_date to end_date inclusive. Weekly and monthly rules are decided
    per date, so there is no bulk date arithmetic here.

    Empty `times` or start after end -> [].
    """
    clock = clock or SystemClock()
    created = clock.now()
    end = schedule_end_date(medication, default_days)

    entries: List[DoseEntry] = []
    if not medication.times:
        return entries

    for day in iter_days(medication.start_date, end):
        if not is_dosing_day(medication, day):
            continue
        for t in medication.times:
            entries.append(DoseEntry(
                id=id_generator.next_id(),
                medication_id=medication.id,
                date=day,
                time=t,
                status="pending",
                created_at=created,
            ))
    return entries


class ScheduleGenerator:
    """Sole writer of dose entries for frequency-governed medications."""

    def __init__(self, store, id_generator: IdGenerator, clock: Optional[Clock] = None,
                 default_days: int = DEFAULT_SCHEDULE_DAYS):
        self.store = store
        self.id_generator = id_generator
        self.clock = clock or SystemClock()
        self.default_days = default_days

    def generate(self, medication: Medication) -> List[DoseEntry]:
        entries = expand_schedule(medication, self.id_generator, self.clock, self.default_days)
        self.store.replace_entries_for_medication(medication.id, entries)
        logger.info("generated %d dose entries for medication %s", len(entries), medication.id)
        return entries
