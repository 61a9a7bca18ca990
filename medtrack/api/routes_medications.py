from typing import List
from fastapi import APIRouter, Depends, HTTPException

from medtrack.api.deps import as_http_error, get_tracker
from medtrack.core.errors import NotFoundError, ValidationError
from medtrack.schemas.models import Medication, MedicationCreate, MedicationUpdate, SchedulingSummary
from medtrack.services.tracker import MedicationTracker

router = APIRouter(prefix="/medications", tags=["medications"])


@router.post("", response_model=Medication, status_code=201)
def create_medication(req: MedicationCreate, tracker: MedicationTracker = Depends(get_tracker)):
    try:
        return tracker.create_medication(req)
    except ValidationError as e:
        raise as_http_error(e)


@router.get("", response_model=List[Medication])
def list_medications(tracker: MedicationTracker = Depends(get_tracker)):
    return tracker.get_medications()


@router.get("/{medication_id}", response_model=Medication)
def get_medication(medication_id: int, tracker: MedicationTracker = Depends(get_tracker)):
    try:
        return tracker.get_medication(medication_id)
    except NotFoundError as e:
        raise as_http_error(e)


@router.patch("/{medication_id}", response_model=Medication)
def update_medication(medication_id: int, req: MedicationUpdate, tracker: MedicationTracker = Depends(get_tracker)):
    try:
        return tracker.update_medication(medication_id, req)
    except (NotFoundError, ValidationError) as e:
        raise as_http_error(e)


@router.delete("/{medication_id}")
def delete_medication(medication_id: int, tracker: MedicationTracker = Depends(get_tracker)):
    try:
        removed = tracker.delete_medication(medication_id)
    except (NotFoundError, ValidationError) as e:
        raise as_http_error(e)
    return {"ok": True, "medication_id": medication_id, "entries_removed": removed}


@router.post("/{medication_id}/reminders", response_model=SchedulingSummary)
def reschedule_reminders(medication_id: int, tracker: MedicationTracker = Depends(get_tracker)):
    try:
        batch = tracker.reschedule_reminders(medication_id)
    except NotFoundError as e:
        raise as_http_error(e)
    if batch.attempted and not batch.armed:
        raise HTTPException(status_code=502, detail="No reminder could be scheduled.")
    return SchedulingSummary(
        entity_type=batch.entity_type,
        entity_id=batch.entity_id,
        cancelled=batch.cancelled,
        attempted=batch.attempted,
        armed=len(batch.armed),
        failed=batch.failed,
    )
