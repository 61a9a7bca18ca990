from datetime import date, datetime

from medtrack.schemas.models import DateTrigger, Goal, GoalStep, WeeklyTrigger
from medtrack.services.notifications import NotificationScheduler

from conftest import NOW, RecordingBackend


def _armed(backend):
    return {t.identifier: t for t in backend.list_all_triggers()}


def test_two_triggers_per_time_and_weekday(scheduler, backend, make_medication):
    med = make_medication(times=["08:00 AM", "8:00 PM"], end_date=None)
    batch = scheduler.schedule_reminders(med)

    assert batch.attempted == 2 * 2 * 7
    assert len(batch.armed) == 28
    assert len(backend.schedule_calls) == 28
    kinds = [t.payload.kind for t in backend.list_all_triggers()]
    assert kinds.count("ontime") == kinds.count("pre") == 14


def test_weekly_medication_uses_its_weekdays(scheduler, backend, make_medication):
    med = make_medication(frequency="weekly", days_of_week=[1, 3], times=["09:30"], end_date=None)
    scheduler.schedule_reminders(med)

    armed = _armed(backend)
    assert set(armed) == {
        "medication-1-1-09:30-ontime", "medication-1-1-09:30-pre15",
        "medication-1-3-09:30-ontime", "medication-1-3-09:30-pre15",
    }
    pre = armed["medication-1-3-09:30-pre15"].trigger
    assert isinstance(pre, WeeklyTrigger)
    assert (pre.hour, pre.minute, pre.weekday, pre.repeats) == (9, 15, 3, True)


def test_pre_reminder_wraps_to_previous_weekday(scheduler, backend, make_medication):
    med = make_medication(frequency="weekly", days_of_week=[1], times=["00:05"], end_date=None)
    scheduler.schedule_reminders(med)

    armed = _armed(backend)
    ontime = armed["medication-1-1-00:05-ontime"].trigger
    pre = armed["medication-1-1-00:05-pre15"].trigger
    assert (ontime.weekday, ontime.hour, ontime.minute) == (1, 0, 5)
    assert (pre.weekday, pre.hour, pre.minute) == (0, 23, 50)


def test_rescheduling_does_not_duplicate(scheduler, backend, make_medication):
    med = make_medication(times=["08:00", "13:00"], end_date=None)
    first = scheduler.schedule_reminders(med)
    before = set(_armed(backend))
    second = scheduler.schedule_reminders(med)

    assert second.cancelled == first.attempted == 28
    assert set(_armed(backend)) == before
    assert len(backend.list_all_triggers()) == 28


def test_cancel_only_touches_one_medication(scheduler, backend, make_medication):
    scheduler.schedule_reminders(make_medication(id=1, end_date=None))
    scheduler.schedule_reminders(make_medication(id=11, end_date=None))

    assert scheduler.cancel_reminders(1) == 14
    remaining = backend.list_all_triggers()
    assert len(remaining) == 14
    assert all(t.payload.data["medication_id"] == 11 for t in remaining)


def test_payload_carries_type_and_owner(scheduler, backend, make_medication):
    scheduler.schedule_reminders(make_medication(id=4, end_date=None))
    t = _armed(backend)["medication-4-3-08:00-ontime"]
    assert t.payload.type == "medication-reminder"
    assert t.payload.data["medication_id"] == 4
    assert t.payload.data["time"] == "08:00 AM"


def test_disabled_reminders_only_cancel(scheduler, backend, make_medication):
    med = make_medication(end_date=None)
    scheduler.schedule_reminders(med)
    batch = scheduler.schedule_reminders(med.model_copy(update={"reminder_enabled": False}))

    assert batch.cancelled == 14
    assert batch.attempted == 0
    assert backend.list_all_triggers() == []


def test_as_needed_and_finished_medications_get_nothing(scheduler, backend, make_medication):
    assert scheduler.schedule_reminders(make_medication(frequency="as-needed", times=[])).attempted == 0
    # ended before the fixed clock's 2024-01-10
    assert scheduler.schedule_reminders(make_medication(end_date=date(2024, 1, 3))).attempted == 0
    assert backend.schedule_calls == []


def test_arming_failures_do_not_stop_the_batch(clock, make_medication):
    backend = RecordingBackend(fail_when=lambda ident, n: n % 3 == 0)
    scheduler = NotificationScheduler(backend, clock)
    batch = scheduler.schedule_reminders(make_medication(end_date=None))

    assert batch.attempted == 14
    assert len(batch.failed) == 4
    assert len(batch.armed) == 10
    assert all(r.error == "notification service unavailable" for r in batch.failed)
    assert len(backend.list_all_triggers()) == 10


def test_listing_failure_is_swallowed(clock, make_medication):
    class NoListing(RecordingBackend):
        def list_all_triggers(self):
            raise RuntimeError("boom")

    scheduler = NotificationScheduler(NoListing(), clock)
    assert scheduler.cancel_reminders(1) == 0
    assert scheduler.schedule_reminders(make_medication(end_date=None)).attempted == 14


def test_monthly_uses_dated_triggers(scheduler, backend, make_medication):
    med = make_medication(frequency="monthly", start_date=date(2024, 1, 15), end_date=None, times=["09:00"])
    batch = scheduler.schedule_reminders(med)

    assert batch.attempted == 6
    armed = _armed(backend)
    t = armed["medication-1-2024-02-15-09:00-pre15"].trigger
    assert isinstance(t, DateTrigger)
    assert t.at == datetime(2024, 2, 15, 8, 45)
    assert "medication-1-2024-04-15-09:00-ontime" not in armed


# ---------------------------
# goal steps
# ---------------------------

def _goal(*steps, time=None):
    return Goal(id="g1", title="Morning walk", time=time, steps=list(steps))


def test_past_goal_step_is_never_scheduled(scheduler, backend):
    goal = _goal(GoalStep(id=1, title="Walk 10 min", start_date="2024-01-09"))
    batch = scheduler.schedule_goal_step_reminders(goal)
    assert batch.attempted == 0
    assert backend.schedule_calls == []


def test_future_goal_step_gets_both_triggers(scheduler, backend):
    goal = _goal(GoalStep(id=2, title="Walk 20 min", start_date="2024-01-12", time="7:00 AM"))
    batch = scheduler.schedule_goal_step_reminders(goal)

    assert batch.attempted == 2
    armed = _armed(backend)
    assert armed["goal-g1-2-07:00-ontime"].trigger.at == datetime(2024, 1, 12, 7, 0)
    assert armed["goal-g1-2-07:00-pre15"].trigger.at == datetime(2024, 1, 12, 6, 45)
    assert armed["goal-g1-2-07:00-ontime"].payload.type == "goal-step-reminder"
    assert armed["goal-g1-2-07:00-ontime"].payload.data["goal_id"] == "g1"


def test_goal_step_filters(scheduler, backend):
    goal = _goal(
        GoalStep(id=1, title="done", start_date="2024-01-20", completed=True),
        GoalStep(id=2, title="no date"),
        GoalStep(id=3, title="bad date", start_date="next week"),
        GoalStep(id=4, title="default time", start_date="2024-01-20"),
        GoalStep(id=5, title="own clock", start_date="2024-01-20T18:30:00"),
    )
    scheduler.schedule_goal_step_reminders(goal)
    armed = _armed(backend)
    assert set(armed) == {
        "goal-g1-4-09:00-ontime", "goal-g1-4-09:00-pre15",
        "goal-g1-5-18:30-ontime", "goal-g1-5-18:30-pre15",
    }


def test_goal_step_pre_reminder_already_past(scheduler, backend):
    # clock is 12:00; a 12:10 step has its pre-reminder at 11:55
    goal = _goal(GoalStep(id=1, title="Stretch", start_date=NOW.date().isoformat(), time="12:10"))
    batch = scheduler.schedule_goal_step_reminders(goal)
    assert [r.identifier for r in batch.results] == ["goal-g1-1-12:10-ontime"]


def test_goal_rescheduling_and_cancel(scheduler, backend):
    goal = _goal(GoalStep(id=1, title="Walk", start_date="2024-01-15"), time="08:00")
    scheduler.schedule_goal_step_reminders(goal)
    again = scheduler.schedule_goal_step_reminders(goal)
    assert again.cancelled == 2
    assert len(backend.list_all_triggers()) == 2
    assert scheduler.cancel_goal_step_reminders("g1") == 2
    assert backend.list_all_triggers() == []


def test_open_ended_horizon_is_configurable(backend, clock, make_medication):
    med = make_medication(start_date=date(2024, 1, 1), end_date=None)
    short = NotificationScheduler(backend, clock, default_days=5)
    assert short.schedule_reminders(med).attempted == 0
    assert NotificationScheduler(backend, clock, default_days=30).schedule_reminders(med).attempted == 14
