from datetime import date
from typing import List
from fastapi import APIRouter, Depends, HTTPException

from medtrack.api.deps import get_tracker
from medtrack.schemas.models import AdherenceInsights, AdherencePoint, AdherenceStats
from medtrack.services.adherence import rating_for
from medtrack.services.tracker import MedicationTracker

router = APIRouter(prefix="/adherence", tags=["adherence"])


@router.get("/stats", response_model=AdherenceStats)
def stats(start: date, end: date, tracker: MedicationTracker = Depends(get_tracker)):
    if start > end:
        raise HTTPException(status_code=400, detail="start must not be after end")
    return tracker.get_adherence_stats(start, end)


@router.get("/weekly", response_model=AdherenceStats)
def weekly(tracker: MedicationTracker = Depends(get_tracker)):
    return tracker.get_weekly_adherence()


@router.get("/monthly", response_model=AdherenceStats)
def monthly(tracker: MedicationTracker = Depends(get_tracker)):
    return tracker.get_monthly_adherence()


@router.get("/series/{kind}", response_model=List[AdherencePoint])
def series(kind: str, tracker: MedicationTracker = Depends(get_tracker)):
    try:
        return tracker.get_series(kind)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/insights", response_model=AdherenceInsights)
def insights(tracker: MedicationTracker = Depends(get_tracker)):
    return tracker.get_insights()


@router.get("/summary")
def summary(tracker: MedicationTracker = Depends(get_tracker)):
    week = tracker.get_weekly_adherence()
    month = tracker.get_monthly_adherence()
    return {
        "weekly": week,
        "monthly": month,
        "rating": rating_for(week.adherence_rate),
    }
