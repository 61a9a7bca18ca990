# medtrack/services/dose_store.py
import json
import logging
import threading
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from medtrack.core.errors import NotFoundError, ValidationError
from medtrack.db.kv_store import KeyValueStore
from medtrack.schemas.models import DOSE_STATUSES, DoseEntry, Medication, require_times
from medtrack.services.ids import LAST_ID_KEY, IdGenerator
from medtrack.utils.dates import Clock, SystemClock, parse_iso_date

logger = logging.getLogger(__name__)

MEDICATIONS_KEY = "@medications"
SCHEDULE_KEY = "@medication_schedule"

REQUIRED_MEDICATION_FIELDS = {"name", "dosage", "frequency", "times", "days_of_week", "start_date", "reminder_enabled"}


def normalize_id(value: Any) -> int:
    """Ids are ints inside the store; "12" and 12 are the same medication."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid id: {value!r}")
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid id: {value!r}")


class DoseStore:
    """
    Medications and the expanded dose schedule, each kept as one JSON list in
    the key-value store. Every mutation is a read-modify-write of the whole
    collection under the store lock.
    """

    def __init__(self, kv: KeyValueStore, id_generator: IdGenerator, clock: Optional[Clock] = None):
        self.kv = kv
        self.id_generator = id_generator
        self.clock = clock or SystemClock()
        self._lock = threading.RLock()

    # ---------------------------
    # raw collections
    # ---------------------------
    def _read(self, key: str) -> List[Dict[str, Any]]:
        raw = self.kv.get_item(key)
        if not raw:
            return []
        data = json.loads(raw)
        return data if isinstance(data, list) else []

    def _write(self, key: str, items: Iterable[Dict[str, Any]]) -> None:
        self.kv.set_item(key, json.dumps(list(items)))

    @staticmethod
    def _dump(model) -> Dict[str, Any]:
        return model.model_dump(mode="json")

    def _load_medications(self) -> List[Medication]:
        meds = []
        for raw in self._read(MEDICATIONS_KEY):
            raw = dict(raw)
            raw["id"] = normalize_id(raw.get("id"))
            meds.append(Medication(**raw))
        return meds

    def _load_schedule(self) -> List[DoseEntry]:
        entries = []
        for raw in self._read(SCHEDULE_KEY):
            raw = dict(raw)
            raw["id"] = normalize_id(raw.get("id"))
            raw["medication_id"] = normalize_id(raw.get("medication_id"))
            entries.append(DoseEntry(**raw))
        return entries

    def _save_medications(self, meds: List[Medication]) -> None:
        self._write(MEDICATIONS_KEY, (self._dump(m) for m in meds))

    def _save_schedule(self, entries: List[DoseEntry]) -> None:
        self._write(SCHEDULE_KEY, (self._dump(e) for e in entries))

    # ---------------------------
    # medications
    # ---------------------------
    def get_medications(self) -> List[Medication]:
        with self._lock:
            return self._load_medications()

    def get_medication_by_id(self, medication_id: Any) -> Optional[Medication]:
        mid = normalize_id(medication_id)
        return next((m for m in self.get_medications() if m.id == mid), None)

    def save_medication(self, fields: Dict[str, Any]) -> Medication:
        now = self.clock.now()
        with self._lock:
            meds = self._load_medications()
            med = Medication(**{**fields, "id": self.id_generator.next_id(), "created_at": now, "updated_at": now})
            meds.append(med)
            self._save_medications(meds)
        return med

    def update_medication(self, medication_id: Any, updates: Dict[str, Any]) -> Medication:
        mid = normalize_id(medication_id)
        with self._lock:
            meds = self._load_medications()
            idx = next((i for i, m in enumerate(meds) if m.id == mid), None)
            if idx is None:
                raise NotFoundError("Medication", mid)

            # null on a required field means "leave as is"
            updates = {k: v for k, v in updates.items() if v is not None or k not in REQUIRED_MEDICATION_FIELDS}
            merged = {**self._dump(meds[idx]), **self._jsonable(updates)}
            merged["id"] = mid
            merged["updated_at"] = self.clock.now()
            try:
                require_times(merged.get("frequency") or "daily", merged.get("times") or [])
                med = Medication(**merged)
            except (ValueError, PydanticValidationError) as e:
                raise ValidationError(f"Invalid medication update: {e}")
            meds[idx] = med
            self._save_medications(meds)
            return meds[idx]

    def delete_medication(self, medication_id: Any) -> int:
        """Removes the medication and its dose entries. Returns entries removed."""
        if medication_id is None:
            raise ValidationError("Cannot delete medication: ID is missing")
        mid = normalize_id(medication_id)
        with self._lock:
            meds = self._load_medications()
            remaining = [m for m in meds if m.id != mid]
            if len(remaining) == len(meds):
                raise NotFoundError("Medication", mid)
            self._save_medications(remaining)
            removed = self.remove_entries_for_medication(mid)
        logger.info("deleted medication %s (%d dose entries)", mid, removed)
        return removed

    @staticmethod
    def _jsonable(updates: Dict[str, Any]) -> Dict[str, Any]:
        out = {}
        for k, v in updates.items():
            out[k] = v.isoformat() if isinstance(v, date) else v
        return out

    # ---------------------------
    # schedule
    # ---------------------------
    def get_schedule(self) -> List[DoseEntry]:
        with self._lock:
            return self._load_schedule()

    def get_entries_for_date(self, day: Any) -> List[DoseEntry]:
        d = parse_iso_date(day)
        return [e for e in self.get_schedule() if e.date == d]

    def get_entries_for_medication(self, medication_id: Any) -> List[DoseEntry]:
        mid = normalize_id(medication_id)
        return [e for e in self.get_schedule() if e.medication_id == mid]

    def get_entries_in_range(self, start: Any, end: Any) -> List[DoseEntry]:
        s, e = parse_iso_date(start), parse_iso_date(end)
        return [x for x in self.get_schedule() if s <= x.date <= e]

    def update_entry_status(self, entry_id: Any, status: str) -> DoseEntry:
        if status not in DOSE_STATUSES:
            raise ValidationError(f"Invalid status: {status!r}")
        eid = normalize_id(entry_id)
        with self._lock:
            entries = self._load_schedule()
            idx = next((i for i, e in enumerate(entries) if e.id == eid), None)
            if idx is None:
                raise NotFoundError("Schedule entry", eid)
            entries[idx] = entries[idx].model_copy(update={"status": status, "updated_at": self.clock.now()})
            self._save_schedule(entries)
            return entries[idx]

    def add_entry(self, entry: DoseEntry) -> DoseEntry:
        with self._lock:
            entries = self._load_schedule()
            entries.append(entry)
            self._save_schedule(entries)
        return entry

    def replace_entries_for_medication(self, medication_id: Any, new_entries: List[DoseEntry]) -> None:
        """Drop every entry of the medication and append the new batch in one write."""
        mid = normalize_id(medication_id)
        with self._lock:
            kept = [e for e in self._load_schedule() if e.medication_id != mid]
            self._save_schedule(kept + list(new_entries))

    def remove_entries_for_medication(self, medication_id: Any) -> int:
        mid = normalize_id(medication_id)
        with self._lock:
            entries = self._load_schedule()
            kept = [e for e in entries if e.medication_id != mid]
            removed = len(entries) - len(kept)
            if removed:
                self._save_schedule(kept)
            else:
                logger.debug("no schedule entries found for medication %s", mid)
            return removed

    # ---------------------------
    # maintenance
    # ---------------------------
    def cleanup_orphaned_schedules(self) -> int:
        with self._lock:
            med_ids = {m.id for m in self._load_medications()}
            entries = self._load_schedule()
            valid = [e for e in entries if e.medication_id in med_ids]
            self._save_schedule(valid)
            return len(entries) - len(valid)

    def export_data(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "medications": self._load_medications(),
                "schedule": self._load_schedule(),
                "export_date": self.clock.now(),
                "version": "1.0",
            }

    def import_data(self, medications: Optional[List[Dict[str, Any]]] = None,
                    schedule: Optional[List[Dict[str, Any]]] = None) -> None:
        with self._lock:
            if medications is not None:
                meds = [Medication(**{**m, "id": normalize_id(m.get("id"))}) for m in medications]
                self._save_medications(meds)
            if schedule is not None:
                entries = [
                    DoseEntry(**{**e, "id": normalize_id(e.get("id")),
                                 "medication_id": normalize_id(e.get("medication_id"))})
                    for e in schedule
                ]
                self._save_schedule(entries)

            # new ids must not collide with imported ones
            used = [m.id for m in self._load_medications()] + [e.id for e in self._load_schedule()]
            if used:
                self.id_generator.ensure_at_least(max(used))

    def clear_all_data(self) -> None:
        with self._lock:
            self.kv.multi_remove([MEDICATIONS_KEY, SCHEDULE_KEY, LAST_ID_KEY])
