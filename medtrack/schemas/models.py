from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field, field_validator, model_validator

from medtrack.core.errors import ValidationError
from medtrack.utils.dates import parse_time

Frequency = Literal["daily", "weekly", "monthly", "as-needed"]
DoseStatus = Literal["pending", "taken", "missed", "skipped"]
ReminderKind = Literal["ontime", "pre"]
NotificationType = Literal["medication-reminder", "goal-step-reminder"]

FREQUENCIES = ("daily", "weekly", "monthly", "as-needed")
DOSE_STATUSES = ("pending", "taken", "missed", "skipped")


def _check_times(times: List[str]) -> List[str]:
    cleaned = []
    for t in times:
        t = str(t).strip()
        try:
            parse_time(t)
        except ValidationError as e:
            raise ValueError(str(e))
        cleaned.append(t)
    return cleaned


def require_times(frequency: str, times: List[str]) -> None:
    if frequency != "as-needed" and not times:
        raise ValueError("At least one reminder time is required unless frequency is as-needed.")


def _check_weekdays(days: List[int]) -> List[int]:
    for d in days:
        if not 0 <= int(d) <= 6:
            raise ValueError(f"weekday out of range (0=Sunday..6=Saturday): {d}")
    return sorted({int(d) for d in days})


class MedicationFields(BaseModel):
    name: str = Field(..., min_length=1)
    dosage: str = ""
    frequency: Frequency = "daily"
    times: List[str] = Field(default_factory=list, description='"HH:MM" or "HH:MM AM/PM"')
    days_of_week: List[int] = Field(default_factory=list, description="0=Sunday..6=Saturday, weekly only")
    start_date: date
    end_date: Optional[date] = Field(default=None, description="Inclusive. Null means start + 365 days.")
    reminder_enabled: bool = True

    instructions: Optional[str] = None
    notes: Optional[str] = None
    category: Optional[str] = None
    prescribed_by: Optional[str] = None
    color: Optional[str] = None

    @field_validator("frequency", mode="before")
    @classmethod
    def _default_frequency(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return "daily"
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("times")
    @classmethod
    def _valid_times(cls, v: List[str]) -> List[str]:
        return _check_times(v)

    @field_validator("days_of_week")
    @classmethod
    def _valid_days(cls, v: List[int]) -> List[int]:
        return _check_weekdays(v)


class MedicationCreate(MedicationFields):
    @model_validator(mode="after")
    def _times_required(self):
        require_times(self.frequency, self.times)
        return self


class MedicationUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    dosage: Optional[str] = None
    frequency: Optional[Frequency] = None
    times: Optional[List[str]] = None
    days_of_week: Optional[List[int]] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    reminder_enabled: Optional[bool] = None

    instructions: Optional[str] = None
    notes: Optional[str] = None
    category: Optional[str] = None
    prescribed_by: Optional[str] = None
    color: Optional[str] = None

    @field_validator("times")
    @classmethod
    def _valid_times(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return None if v is None else _check_times(v)

    @field_validator("days_of_week")
    @classmethod
    def _valid_days(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        return None if v is None else _check_weekdays(v)


class Medication(MedicationFields):
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # stored data may predate validation; keep what was saved
    @field_validator("times")
    @classmethod
    def _valid_times(cls, v: List[str]) -> List[str]:
        return [str(t).strip() for t in v]


class DoseEntry(BaseModel):
    id: int
    medication_id: int
    date: date
    time: str
    status: DoseStatus = "pending"
    manual: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DoseForDate(BaseModel):
    """Dose entry joined with its medication, as listed on the day view."""
    id: int
    medication_id: int
    date: date
    time: str
    status: DoseStatus
    manual: bool = False
    name: str
    dosage: str = ""
    instructions: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: DoseStatus


class ManualEntryRequest(BaseModel):
    medication_id: int
    date: date
    time: str
    status: DoseStatus = "taken"

    @field_validator("time")
    @classmethod
    def _valid_time(cls, v: str) -> str:
        return _check_times([v])[0]


# ---------------------------
# Goals (notification source)
# ---------------------------

class GoalStep(BaseModel):
    id: Union[int, str]
    title: str = ""
    start_date: Optional[str] = Field(default=None, description="ISO date or date-time; may be missing")
    time: Optional[str] = None
    completed: bool = False
    order: int = 0


class Goal(BaseModel):
    id: Union[int, str]
    title: str = ""
    time: Optional[str] = None
    steps: List[GoalStep] = Field(default_factory=list)


# ---------------------------
# Notifications
# ---------------------------

class WeeklyTrigger(BaseModel):
    hour: int = Field(..., ge=0, le=23)
    minute: int = Field(..., ge=0, le=59)
    weekday: int = Field(..., ge=0, le=6, description="0=Sunday..6=Saturday")
    repeats: bool = True


class DateTrigger(BaseModel):
    at: datetime


Trigger = Union[WeeklyTrigger, DateTrigger]


class NotificationPayload(BaseModel):
    type: NotificationType
    kind: ReminderKind
    title: str
    body: str
    data: Dict[str, Any] = Field(default_factory=dict)


class ScheduledTrigger(BaseModel):
    identifier: str
    payload: NotificationPayload
    trigger: Trigger


class TriggerResult(BaseModel):
    identifier: str
    ok: bool
    ticket_id: Optional[str] = None
    error: Optional[str] = None


class SchedulingBatch(BaseModel):
    entity_type: Literal["medication", "goal"]
    entity_id: str
    cancelled: int = 0
    results: List[TriggerResult] = Field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.results)

    @property
    def armed(self) -> List[TriggerResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> List[TriggerResult]:
        return [r for r in self.results if not r.ok]


class SchedulingSummary(BaseModel):
    entity_type: str
    entity_id: str
    cancelled: int
    attempted: int
    armed: int
    failed: List[TriggerResult]


# ---------------------------
# Adherence
# ---------------------------

class AdherenceStats(BaseModel):
    total: int = 0
    taken: int = 0
    missed: int = 0
    skipped: int = 0
    pending: int = 0
    adherence_rate: int = Field(default=0, ge=0, le=100)


class AdherencePoint(BaseModel):
    label: str
    start: date
    end: date
    pct: float


class AdherenceInsights(BaseModel):
    best_window: str = "-"
    struggle_window: str = "-"
    worst_day: str = "-"
    top_miss_medication: str = "-"
    consistency: Literal["High", "Medium", "Low"] = "High"
    streak_days: int = 0
    trend_delta: int = 0
    recommendations: List[str] = Field(default_factory=list)


class ExportBundle(BaseModel):
    medications: List[Medication]
    schedule: List[DoseEntry]
    export_date: datetime
    version: str = "1.0"


class ImportRequest(BaseModel):
    medications: Optional[List[Dict[str, Any]]] = None
    schedule: Optional[List[Dict[str, Any]]] = None
