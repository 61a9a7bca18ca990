# medtrack/services/tracker.py
import logging
from typing import Any, Dict, List, Optional, Union

from medtrack.core.errors import NotFoundError
from medtrack.schemas.models import (
    AdherenceInsights,
    AdherencePoint,
    AdherenceStats,
    DoseEntry,
    DoseForDate,
    Goal,
    Medication,
    MedicationCreate,
    MedicationUpdate,
    SchedulingBatch,
)
from medtrack.services.adherence import AdherenceAggregator
from medtrack.services.dose_store import DoseStore, normalize_id
from medtrack.services.ids import IdGenerator
from medtrack.services.notifications import NotificationScheduler
from medtrack.services.schedule_generator import ScheduleGenerator
from medtrack.utils.dates import Clock, SystemClock, parse_iso_date, parse_time, time_to_minutes

logger = logging.getLogger(__name__)


class MedicationTracker:
    """
    Query and mutation surface used by the API. Data mutations always
    complete; reminder scheduling after them is best effort.
    """

    def __init__(
        self,
        store: DoseStore,
        id_generator: IdGenerator,
        scheduler: NotificationScheduler,
        clock: Optional[Clock] = None,
        aggregator: Optional[AdherenceAggregator] = None,
        default_days: Optional[int] = None,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.id_generator = id_generator
        self.scheduler = scheduler
        # expansion and reminders must agree on the end of open-ended schedules
        if default_days is None:
            default_days = scheduler.default_days
        scheduler.default_days = default_days
        self.generator = ScheduleGenerator(store, id_generator, self.clock, default_days)
        self.aggregator = aggregator or AdherenceAggregator(store, self.clock)

    # ---------------------------
    # medications
    # ---------------------------
    def get_medications(self) -> List[Medication]:
        return self.store.get_medications()

    def get_medication(self, medication_id: Any) -> Medication:
        med = self.store.get_medication_by_id(medication_id)
        if med is None:
            raise NotFoundError("Medication", medication_id)
        return med

    def create_medication(self, payload: Union[MedicationCreate, Dict[str, Any]]) -> Medication:
        if isinstance(payload, dict):
            payload = MedicationCreate(**payload)
        med = self.store.save_medication(payload.model_dump())
        self.generator.generate(med)
        self._refresh_reminders(med)
        return med

    def update_medication(self, medication_id: Any, updates: Union[MedicationUpdate, Dict[str, Any]]) -> Medication:
        if isinstance(updates, dict):
            updates = MedicationUpdate(**updates)
        med = self.store.update_medication(medication_id, updates.model_dump(exclude_unset=True))
        self.generator.generate(med)
        self._refresh_reminders(med)
        return med

    def delete_medication(self, medication_id: Any) -> int:
        removed = self.store.delete_medication(medication_id)
        self.scheduler.cancel_reminders(normalize_id(medication_id))
        return removed

    def _refresh_reminders(self, med: Medication) -> Optional[SchedulingBatch]:
        try:
            batch = self.scheduler.schedule_reminders(med)
        except Exception:
            logger.exception("reminder scheduling failed for medication %s", med.id)
            return None
        if batch.failed:
            logger.warning("medication %s: %d reminder triggers failed", med.id, len(batch.failed))
        return batch

    def reschedule_reminders(self, medication_id: Any) -> SchedulingBatch:
        return self.scheduler.schedule_reminders(self.get_medication(medication_id))

    # ---------------------------
    # schedule
    # ---------------------------
    def get_medications_for_date(self, day: Any) -> List[DoseForDate]:
        entries = self.store.get_entries_for_date(day)
        meds = {m.id: m for m in self.store.get_medications()}

        out: List[DoseForDate] = []
        for e in entries:
            med = meds.get(e.medication_id)
            if med is None:
                continue  # orphaned entry
            out.append(DoseForDate(
                **e.model_dump(include={"id", "medication_id", "date", "time", "status", "manual"}),
                name=med.name,
                dosage=med.dosage,
                instructions=med.instructions,
            ))

        out.sort(key=lambda d: (time_to_minutes(d.time) or 0, d.name))
        return out

    def update_status(self, entry_id: Any, status: str) -> DoseEntry:
        return self.store.update_entry_status(entry_id, status)

    def add_manual_medication_entry(self, medication_id: Any, day: Any, time: str,
                                    status: str = "taken") -> DoseEntry:
        med = self.get_medication(medication_id)
        parse_time(time)
        entry = DoseEntry(
            id=self.id_generator.next_id(),
            medication_id=med.id,
            date=parse_iso_date(day),
            time=time.strip(),
            status=status,
            manual=True,
            created_at=self.clock.now(),
        )
        return self.store.add_entry(entry)

    # ---------------------------
    # adherence
    # ---------------------------
    def get_adherence_stats(self, start: Any, end: Any) -> AdherenceStats:
        return self.aggregator.get_adherence_stats(start, end)

    def get_weekly_adherence(self) -> AdherenceStats:
        return self.aggregator.get_weekly_adherence()

    def get_monthly_adherence(self) -> AdherenceStats:
        return self.aggregator.get_monthly_adherence()

    def get_series(self, kind: str) -> List[AdherencePoint]:
        if kind == "weekly":
            return self.aggregator.weekly_series()
        if kind == "monthly":
            return self.aggregator.monthly_series()
        if kind == "trend":
            return self.aggregator.trend_series()
        raise ValueError(f"Unknown series: {kind}")

    def get_insights(self) -> AdherenceInsights:
        return self.aggregator.get_insights()

    # ---------------------------
    # goals
    # ---------------------------
    def schedule_goal_reminders(self, goal: Goal) -> SchedulingBatch:
        return self.scheduler.schedule_goal_step_reminders(goal)

    def cancel_goal_reminders(self, goal_id: Any) -> int:
        return self.scheduler.cancel_goal_step_reminders(goal_id)

    # ---------------------------
    # maintenance
    # ---------------------------
    def cleanup_orphaned_schedules(self) -> int:
        return self.store.cleanup_orphaned_schedules()

    def export_data(self) -> Dict[str, Any]:
        return self.store.export_data()

    def import_data(self, medications: Optional[List[Dict[str, Any]]] = None,
                    schedule: Optional[List[Dict[str, Any]]] = None) -> None:
        self.store.import_data(medications=medications, schedule=schedule)
        for med in self.store.get_medications():
            self._refresh_reminders(med)

    def clear_all_data(self) -> None:
        for med in self.store.get_medications():
            self.scheduler.cancel_reminders(med.id)
        self.store.clear_all_data()
