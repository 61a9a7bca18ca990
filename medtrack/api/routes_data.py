from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError as PydanticValidationError

from medtrack.api.deps import as_http_error, get_tracker
from medtrack.core.errors import ValidationError
from medtrack.schemas.models import ExportBundle, ImportRequest
from medtrack.services.tracker import MedicationTracker

router = APIRouter(prefix="/data", tags=["data"])


@router.get("/export", response_model=ExportBundle)
def export_data(tracker: MedicationTracker = Depends(get_tracker)):
    return tracker.export_data()


@router.post("/import")
def import_data(req: ImportRequest, tracker: MedicationTracker = Depends(get_tracker)):
    try:
        tracker.import_data(medications=req.medications, schedule=req.schedule)
    except ValidationError as e:
        raise as_http_error(e)
    except PydanticValidationError as e:
        raise HTTPException(status_code=400, detail=e.errors(include_url=False))
    return {"ok": True}


@router.post("/cleanup")
def cleanup(tracker: MedicationTracker = Depends(get_tracker)):
    return {"removed": tracker.cleanup_orphaned_schedules()}
