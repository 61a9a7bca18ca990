# medtrack/services/recurrence.py
from datetime import date
from typing import List

from medtrack.schemas.models import Medication
from medtrack.utils.dates import js_weekday

ALL_WEEKDAYS = [0, 1, 2, 3, 4, 5, 6]


def is_dosing_day(medication: Medication, day: date) -> bool:
    freq = medication.frequency

    if freq == "daily":
        return True

    if freq == "weekly":
        # no weekdays configured -> every day; callers rely on this
        if not medication.days_of_week:
            return True
        return js_weekday(day) in medication.days_of_week

    if freq == "monthly":
        # short months never reach a late start day; no rollover
        return day.day == medication.start_date.day

    if freq == "as-needed":
        return False  # manual entries only

    return True


def effective_weekdays(medication: Medication) -> List[int]:
    """Weekdays (0=Sunday) a weekly-recurring reminder should fire on."""
    if medication.frequency == "weekly" and medication.days_of_week:
        return sorted(set(medication.days_of_week))
    return list(ALL_WEEKDAYS)
