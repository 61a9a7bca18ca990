from datetime import date
from typing import List
from fastapi import APIRouter, Depends

from medtrack.api.deps import as_http_error, get_tracker
from medtrack.core.errors import NotFoundError, ValidationError
from medtrack.schemas.models import DoseEntry, DoseForDate, ManualEntryRequest, StatusUpdateRequest
from medtrack.services.tracker import MedicationTracker

router = APIRouter(prefix="/schedule", tags=["schedule"])


@router.get("", response_model=List[DoseForDate])
def medications_for_date(date: date, tracker: MedicationTracker = Depends(get_tracker)):
    return tracker.get_medications_for_date(date)


@router.patch("/{entry_id}", response_model=DoseEntry)
def update_status(entry_id: int, req: StatusUpdateRequest, tracker: MedicationTracker = Depends(get_tracker)):
    try:
        return tracker.update_status(entry_id, req.status)
    except (NotFoundError, ValidationError) as e:
        raise as_http_error(e)


@router.post("/manual", response_model=DoseEntry, status_code=201)
def add_manual_entry(req: ManualEntryRequest, tracker: MedicationTracker = Depends(get_tracker)):
    try:
        return tracker.add_manual_medication_entry(req.medication_id, req.date, req.time, req.status)
    except (NotFoundError, ValidationError) as e:
        raise as_http_error(e)
