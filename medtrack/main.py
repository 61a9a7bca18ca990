from fastapi import FastAPI
from medtrack.core.config import LOG_LEVEL
from medtrack.core.logging_config import configure_logging
from medtrack.api.routes_medications import router as medications_router
from medtrack.api.routes_schedule import router as schedule_router
from medtrack.api.routes_adherence import router as adherence_router
from medtrack.api.routes_goals import router as goals_router
from medtrack.api.routes_data import router as data_router

configure_logging(LOG_LEVEL)

app = FastAPI(title="Medication Tracker", version="1.0")

app.include_router(medications_router)
app.include_router(schedule_router)
app.include_router(adherence_router)
app.include_router(goals_router)
app.include_router(data_router)

@app.get("/health")
def health():
    return {"ok": True}


@app.get("/")
def root():
    return {"ok": True, "service": "Medication Tracker"}
