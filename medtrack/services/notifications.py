# medtrack/services/notifications.py
from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from medtrack.core.config import (
    DEFAULT_GOAL_REMINDER_TIME,
    DEFAULT_SCHEDULE_DAYS,
    MONTHLY_LOOKAHEAD,
    PRE_REMINDER_MINUTES,
)
from medtrack.core.errors import SchedulingError, ValidationError
from medtrack.schemas.models import (
    DateTrigger,
    Goal,
    GoalStep,
    Medication,
    NotificationPayload,
    ScheduledTrigger,
    SchedulingBatch,
    Trigger,
    TriggerResult,
    WeeklyTrigger,
)
from medtrack.services.recurrence import effective_weekdays, is_dosing_day
from medtrack.services.schedule_generator import schedule_end_date
from medtrack.utils.dates import (
    Clock,
    SystemClock,
    WEEKDAY_LABELS,
    format_hhmm,
    format_iso_date,
    iter_days,
    parse_iso_datetime,
    parse_time,
    shift_minutes,
)

logger = logging.getLogger(__name__)

MEDICATION_REMINDER = "medication-reminder"
GOAL_STEP_REMINDER = "goal-step-reminder"


def new_ticket_id() -> str:
    return "ntf_" + uuid.uuid4().hex[:10]


# ---------------------------
# Notification layer
# ---------------------------

class NotificationBackend:
    """Device notification API the scheduler talks to."""

    def schedule_trigger(self, identifier: str, payload: NotificationPayload, trigger: Trigger) -> str:
        raise NotImplementedError

    def cancel_trigger(self, identifier: str) -> None:
        raise NotImplementedError

    def list_all_triggers(self) -> List[ScheduledTrigger]:
        raise NotImplementedError


class InMemoryNotificationBackend(NotificationBackend):
    def __init__(self):
        self._triggers: Dict[str, ScheduledTrigger] = {}
        self._lock = threading.Lock()

    def schedule_trigger(self, identifier: str, payload: NotificationPayload, trigger: Trigger) -> str:
        with self._lock:
            self._triggers[identifier] = ScheduledTrigger(identifier=identifier, payload=payload, trigger=trigger)
        return new_ticket_id()

    def cancel_trigger(self, identifier: str) -> None:
        with self._lock:
            self._triggers.pop(identifier, None)

    def list_all_triggers(self) -> List[ScheduledTrigger]:
        with self._lock:
            return list(self._triggers.values())


# ---------------------------
# Identifiers
# ---------------------------

def reminder_identifier(entity_type: str, entity_id: Any, slot: Any, hhmm: str, kind: str,
                        lead_minutes: int = PRE_REMINDER_MINUTES) -> str:
    suffix = "ontime" if kind == "ontime" else f"pre{lead_minutes}"
    return f"{entity_type}-{entity_id}-{slot}-{hhmm}-{suffix}"


def entity_prefix(entity_type: str, entity_id: Any) -> str:
    return f"{entity_type}-{entity_id}-"


# ---------------------------
# Scheduler
# ---------------------------

class NotificationScheduler:
    """
    Two triggers per dosing instance: on time, and `pre_reminder_minutes`
    before. Existing triggers of an entity are always cancelled before new
    ones are armed. Arming failures are recorded per trigger and never stop
    the rest of the batch.
    """

    def __init__(
        self,
        backend: NotificationBackend,
        clock: Optional[Clock] = None,
        pre_reminder_minutes: int = PRE_REMINDER_MINUTES,
        monthly_lookahead: int = MONTHLY_LOOKAHEAD,
        default_goal_time: str = DEFAULT_GOAL_REMINDER_TIME,
        default_days: int = DEFAULT_SCHEDULE_DAYS,
    ):
        self.backend = backend
        self.clock = clock or SystemClock()
        self.pre_reminder_minutes = pre_reminder_minutes
        self.monthly_lookahead = monthly_lookahead
        self.default_goal_time = default_goal_time
        self.default_days = default_days

    # --- medications -------------------------------------------------

    def schedule_reminders(self, medication: Medication) -> SchedulingBatch:
        batch = SchedulingBatch(entity_type="medication", entity_id=str(medication.id))
        batch.cancelled = self.cancel_reminders(medication.id)

        if not medication.reminder_enabled:
            logger.debug("reminders disabled for medication %s", medication.id)
            return batch
        if medication.frequency == "as-needed" or not medication.times:
            return batch
        today = self.clock.today()
        if schedule_end_date(medication, self.default_days) < today:
            return batch

        if medication.frequency == "monthly":
            self._arm_monthly(medication, batch)
        else:
            self._arm_weekly(medication, batch)

        logger.info(
            "medication %s: %d/%d reminder triggers armed",
            medication.id, len(batch.armed), batch.attempted,
        )
        return batch

    def _arm_weekly(self, medication: Medication, batch: SchedulingBatch) -> None:
        for time_str in medication.times:
            try:
                hour, minute = parse_time(time_str)
            except ValidationError as e:
                batch.results.append(TriggerResult(
                    identifier=f"medication-{medication.id}-{time_str}", ok=False, error=str(e)))
                logger.error("skipping reminder time %r for medication %s: %s", time_str, medication.id, e)
                continue

            hhmm = format_hhmm(hour, minute)
            for weekday in effective_weekdays(medication):
                ontime = WeeklyTrigger(hour=hour, minute=minute, weekday=weekday)
                pre_h, pre_m, pre_wd = shift_minutes(hour, minute, weekday, -self.pre_reminder_minutes)
                pre = WeeklyTrigger(hour=pre_h, minute=pre_m, weekday=pre_wd)

                for kind, trigger in (("ontime", ontime), ("pre", pre)):
                    ident = reminder_identifier("medication", medication.id, weekday, hhmm, kind,
                                                self.pre_reminder_minutes)
                    payload = self._medication_payload(medication, time_str, kind,
                                                       extra={"weekday": WEEKDAY_LABELS[weekday]})
                    batch.results.append(self._arm(ident, payload, trigger))

    def _arm_monthly(self, medication: Medication, batch: SchedulingBatch) -> None:
        now = self.clock.now()
        end = schedule_end_date(medication, self.default_days)
        start = max(medication.start_date, now.date())

        found = 0
        for day in iter_days(start, end):
            if found >= self.monthly_lookahead:
                break
            if not is_dosing_day(medication, day):
                continue
            found += 1
            for time_str in medication.times:
                try:
                    hour, minute = parse_time(time_str)
                except ValidationError as e:
                    logger.error("skipping reminder time %r for medication %s: %s", time_str, medication.id, e)
                    continue
                at = datetime(day.year, day.month, day.day, hour, minute)
                hhmm = format_hhmm(hour, minute)
                for kind, when in (("ontime", at), ("pre", at - timedelta(minutes=self.pre_reminder_minutes))):
                    if when <= now:
                        continue
                    ident = reminder_identifier("medication", medication.id, format_iso_date(day), hhmm, kind,
                                                self.pre_reminder_minutes)
                    payload = self._medication_payload(medication, time_str, kind,
                                                       extra={"date": format_iso_date(day)})
                    batch.results.append(self._arm(ident, payload, DateTrigger(at=when)))

    def _medication_payload(self, medication: Medication, time_str: str, kind: str,
                            extra: Optional[Dict[str, Any]] = None) -> NotificationPayload:
        dosage = medication.dosage or "your medication"
        if kind == "ontime":
            title = f"Time for {medication.name}"
            body = f"Time to take {dosage}"
        else:
            title = f"Upcoming: {medication.name}"
            body = f"Take {dosage} in {self.pre_reminder_minutes} minutes ({time_str})"
        return NotificationPayload(
            type=MEDICATION_REMINDER,
            kind=kind,
            title=title,
            body=body,
            data={
                "medication_id": medication.id,
                "medication_name": medication.name,
                "time": time_str,
                **(extra or {}),
            },
        )

    def cancel_reminders(self, medication_id: Any) -> int:
        return self._cancel_matching("medication", MEDICATION_REMINDER, "medication_id", medication_id)

    # --- goals -------------------------------------------------------

    def schedule_goal_step_reminders(self, goal: Goal) -> SchedulingBatch:
        batch = SchedulingBatch(entity_type="goal", entity_id=str(goal.id))
        batch.cancelled = self.cancel_goal_step_reminders(goal.id)
        now = self.clock.now()

        for step in sorted(goal.steps, key=lambda s: s.order):
            if step.completed:
                continue
            resolved = self._resolve_step_time(goal, step)
            if resolved is None:
                continue
            at, hhmm = resolved
            if at <= now:
                continue  # past steps are skipped, not errors

            for kind, when in (("ontime", at), ("pre", at - timedelta(minutes=self.pre_reminder_minutes))):
                if when <= now:
                    continue
                ident = reminder_identifier("goal", goal.id, step.id, hhmm, kind, self.pre_reminder_minutes)
                payload = NotificationPayload(
                    type=GOAL_STEP_REMINDER,
                    kind=kind,
                    title=goal.title or "Goal step",
                    body=(step.title if kind == "ontime"
                          else f"Starting in {self.pre_reminder_minutes} minutes: {step.title}"),
                    data={"goal_id": goal.id, "step_id": step.id, "order": step.order},
                )
                batch.results.append(self._arm(ident, payload, DateTrigger(at=when)))

        logger.info("goal %s: %d/%d step triggers armed", goal.id, len(batch.armed), batch.attempted)
        return batch

    def _resolve_step_time(self, goal: Goal, step: GoalStep) -> Optional[Tuple[datetime, str]]:
        start = parse_iso_datetime(step.start_date) if step.start_date else None
        if start is None:
            return None

        # an explicit time on the step or goal wins over the date-time's own clock part
        time_str = step.time or goal.time
        if time_str is None and "T" in (step.start_date or ""):
            return start, format_hhmm(start.hour, start.minute)
        try:
            hour, minute = parse_time(time_str or self.default_goal_time)
        except ValidationError:
            logger.warning("goal %s step %s has unusable time %r", goal.id, step.id, time_str)
            return None
        at = start.replace(hour=hour, minute=minute, second=0, microsecond=0)
        return at, format_hhmm(hour, minute)

    def cancel_goal_step_reminders(self, goal_id: Any) -> int:
        return self._cancel_matching("goal", GOAL_STEP_REMINDER, "goal_id", goal_id)

    # --- shared ------------------------------------------------------

    def _arm(self, identifier: str, payload: NotificationPayload, trigger: Trigger) -> TriggerResult:
        try:
            ticket = self.backend.schedule_trigger(identifier, payload, trigger)
            return TriggerResult(identifier=identifier, ok=True, ticket_id=str(ticket))
        except Exception as e:
            err = SchedulingError(identifier, str(e))
            logger.error("failed to arm notification %s", err)
            return TriggerResult(identifier=identifier, ok=False, error=err.reason)

    def _cancel_matching(self, entity_type: str, payload_type: str, id_field: str, entity_id: Any) -> int:
        try:
            existing = self.backend.list_all_triggers()
        except Exception as e:
            logger.error("could not list scheduled notifications: %s", e)
            return 0

        prefix = entity_prefix(entity_type, entity_id)
        cancelled = 0
        for t in existing:
            owner = t.payload.data.get(id_field)
            owned = t.payload.type == payload_type and owner is not None and str(owner) == str(entity_id)
            if not (owned or t.identifier.startswith(prefix)):
                continue
            try:
                self.backend.cancel_trigger(t.identifier)
                cancelled += 1
            except Exception as e:
                logger.error("failed to cancel notification %s", SchedulingError(t.identifier, str(e)))

        logger.debug("cancelled %d notifications for %s %s", cancelled, entity_type, entity_id)
        return cancelled

