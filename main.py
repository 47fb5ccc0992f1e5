import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

import db
from config import settings
from app.services.adherence import adherence_summary
from app.services.missed_doses import calculate_missed_doses
from app.services.reminder_service import ReminderService, build_reminder_service
from app.types.errors import StoreUnavailable
from app.types.schedule_contract import (
    AdherenceSummary,
    HistoryRecord,
    Medication,
    PendingEntry,
    ReconcileReport,
    ReminderTimeEntry,
    UserAction,
    UserActionResult,
)

_LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Medication reminder backend")


# Build the service once and reconcile on startup; close the pool on shutdown

@app.on_event("startup")
async def startup_event():
    app.state.reminders = build_reminder_service()
    # Tables are managed via Alembic migrations
    try:
        report = await app.state.reminders.on_app_start()
        _LOGGER.info("Startup reconcile: %s", report.model_dump())
    except StoreUnavailable as exc:
        # Keep serving; the beat task retries the pass
        _LOGGER.warning("Startup reconcile failed: %s", exc)

@app.on_event("shutdown")
async def shutdown_event():
    await db.dispose_engine()


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)})


def get_reminders(request: Request) -> ReminderService:
    return request.app.state.reminders


# --------------------------------------------
# Request bodies
# --------------------------------------------

class AlarmIn(BaseModel):
    medication_id: int
    hour: int = Field(ge=0, le=23)
    minute: int = Field(ge=0, le=59)


class ActionIn(BaseModel):
    kind: UserAction
    medication_id: Optional[int] = None
    hour: int = Field(ge=0, le=23)
    minute: int = Field(ge=0, le=59)


class MedicationIn(BaseModel):
    profile_id: int = 1
    name: str
    photo_uri: Optional[str] = None
    dosage: Optional[str] = None
    notes: Optional[str] = None
    schedule: List[ReminderTimeEntry] = Field(default_factory=list)


def _report_window(start: Optional[datetime], end: Optional[datetime]) -> tuple[datetime, datetime]:
    end = end or datetime.now(timezone.utc)
    start = start or end - timedelta(days=30)
    if start.tzinfo is None or end.tzinfo is None:
        raise HTTPException(400, "start and end must include a UTC offset")
    if start > end:
        raise HTTPException(400, "start must not be after end")
    if end - start > timedelta(days=settings.MAX_REPORT_DAYS):
        raise HTTPException(400, f"report range is limited to {settings.MAX_REPORT_DAYS} days")
    return start, end


# --------------------------------------------
# Triggers
# --------------------------------------------

@app.post("/v1/alarms", response_model=List[PendingEntry])
async def alarm_fired(body: AlarmIn, reminders: ReminderService = Depends(get_reminders)):
    return await reminders.on_alarm_fired(body.medication_id, body.hour, body.minute)


@app.post("/v1/actions", response_model=UserActionResult)
async def user_action(body: ActionIn, reminders: ReminderService = Depends(get_reminders)):
    if not body.kind.grouped and body.medication_id is None:
        raise HTTPException(422, f"{body.kind.value} needs medication_id")
    return await reminders.on_user_action(body.kind, body.medication_id, body.hour, body.minute)


@app.post("/v1/reconcile", response_model=ReconcileReport)
async def reconcile(reminders: ReminderService = Depends(get_reminders)):
    return await reminders.on_app_start()


@app.get("/v1/pending", response_model=List[PendingEntry])
async def pending(
    hour: Optional[int] = None,
    minute: Optional[int] = None,
    reminders: ReminderService = Depends(get_reminders),
):
    if hour is not None and minute is not None:
        return reminders.tracker.list_at(hour, minute)
    return reminders.tracker.list_all()


# --------------------------------------------
# Medication catalog
# --------------------------------------------

@app.get("/v1/medications", response_model=List[Medication])
async def list_medications(reminders: ReminderService = Depends(get_reminders)):
    return await reminders.medications.get_all()


@app.post("/v1/medications", response_model=Medication, status_code=201)
async def create_medication(body: MedicationIn, reminders: ReminderService = Depends(get_reminders)):
    medication = Medication(id=0, **body.model_dump())
    new_id = await reminders.medications.add(medication)
    return medication.model_copy(update={"id": new_id})


@app.delete("/v1/medications/{medication_id}", status_code=204)
async def remove_medication(medication_id: int, reminders: ReminderService = Depends(get_reminders)):
    if not await reminders.medications.remove(medication_id):
        raise HTTPException(404, "medication not found")
    reminders.on_medication_deleted(medication_id)


# --------------------------------------------
# Reports
# --------------------------------------------

@app.get("/v1/reports/missed", response_model=List[HistoryRecord])
async def missed_report(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    reminders: ReminderService = Depends(get_reminders),
):
    start, end = _report_window(start, end)
    medications = await reminders.medications.get_all()
    history = await reminders.history.query_by_date_range(start - timedelta(days=1), end + timedelta(days=1))
    return calculate_missed_doses(medications, history, start, end)


@app.get("/v1/reports/adherence", response_model=AdherenceSummary)
async def adherence_report(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    include_skipped: bool = False,
    reminders: ReminderService = Depends(get_reminders),
):
    start, end = _report_window(start, end)
    medications = await reminders.medications.get_all()
    history = await reminders.history.query_by_date_range(start - timedelta(days=1), end + timedelta(days=1))
    return adherence_summary(medications, history, start, end, include_skipped=include_skipped)
