from fastapi import APIRouter, Depends

from medtrack.api.deps import get_tracker
from medtrack.schemas.models import Goal, SchedulingSummary
from medtrack.services.tracker import MedicationTracker

router = APIRouter(prefix="/goals", tags=["goals"])


@router.post("/reminders", response_model=SchedulingSummary)
def schedule_goal_reminders(goal: Goal, tracker: MedicationTracker = Depends(get_tracker)):
    batch = tracker.schedule_goal_reminders(goal)
    return SchedulingSummary(
        entity_type=batch.entity_type,
        entity_id=batch.entity_id,
        cancelled=batch.cancelled,
        attempted=batch.attempted,
        armed=len(batch.armed),
        failed=batch.failed,
    )


@router.delete("/{goal_id}/reminders")
def cancel_goal_reminders(goal_id: str, tracker: MedicationTracker = Depends(get_tracker)):
    return {"goal_id": goal_id, "cancelled": tracker.cancel_goal_reminders(goal_id)}
