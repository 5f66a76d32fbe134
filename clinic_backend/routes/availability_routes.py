from datetime import date, datetime, time, timezone

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.auth.dependencies import require_doctor
from clinic_backend.database import get_db
from clinic_backend.models.doctor import Doctor
from clinic_backend.routes.common import database_unavailable, ensure_database_ready
from clinic_backend.services import availability_store
from clinic_backend.services.slots import SLOT_DURATION_MINUTES, available_slots

router = APIRouter(tags=['availability'])

MAX_WEEKLY_WINDOWS = 42


class SlotResponse(BaseModel):
    start: datetime
    end: datetime


class SlotListResponse(BaseModel):
    doctor_id: int
    date: date
    timezone: str
    duration_minutes: int
    slots: list[SlotResponse]


class AvailabilityWindowRequest(BaseModel):
    weekday: int = Field(ge=0, le=6)
    start_time: time
    end_time: time

    @field_validator('start_time', 'end_time')
    @classmethod
    def strip_seconds(cls, value: time) -> time:
        return value.replace(second=0, microsecond=0, tzinfo=None)


class WeeklyScheduleRequest(BaseModel):
    windows: list[AvailabilityWindowRequest] = Field(default_factory=list, max_length=MAX_WEEKLY_WINDOWS)


class AvailabilityWindowResponse(BaseModel):
    id: int
    doctor_id: int
    weekday: int
    start_time: time
    end_time: time

    class Config:
        from_attributes = True


class CreateTimeOffRequest(BaseModel):
    start_at: datetime
    end_at: datetime
    reason: str | None = None


class TimeOffResponse(BaseModel):
    id: int
    doctor_id: int
    start_at: datetime
    end_at: datetime
    reason: str | None = None

    class Config:
        from_attributes = True


@router.get('/doctors/{doctor_id}/slots', response_model=SlotListResponse)
def list_doctor_slots(
    doctor_id: int,
    slot_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        slots = available_slots(doctor_id, slot_date, db, not_before=datetime.now(timezone.utc))
        doctor = availability_store.get_doctor(doctor_id, db)
        zone = availability_store.get_clinic_zone(doctor, db)

        return SlotListResponse(
            doctor_id=doctor_id,
            date=slot_date,
            timezone=zone.key,
            duration_minutes=SLOT_DURATION_MINUTES,
            slots=[SlotResponse(start=slot.start, end=slot.end) for slot in slots],
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/doctors/{doctor_id}/availability', response_model=list[AvailabilityWindowResponse])
def list_doctor_availability(doctor_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return availability_store.list_windows(doctor_id, db)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/availability/windows', response_model=list[AvailabilityWindowResponse])
def list_my_windows(doctor: Doctor = Depends(require_doctor), db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return availability_store.list_windows(doctor.id, db)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/availability/windows', response_model=AvailabilityWindowResponse, status_code=status.HTTP_201_CREATED)
def create_window(
    data: AvailabilityWindowRequest,
    doctor: Doctor = Depends(require_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return availability_store.add_window(doctor.id, data.weekday, data.start_time, data.end_time, db)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.put('/availability/windows', response_model=list[AvailabilityWindowResponse])
def replace_windows(
    data: WeeklyScheduleRequest,
    doctor: Doctor = Depends(require_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return availability_store.replace_weekly_schedule(
            doctor.id,
            [(window.weekday, window.start_time, window.end_time) for window in data.windows],
            db,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/availability/windows/{window_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_window(
    window_id: int,
    doctor: Doctor = Depends(require_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        availability_store.delete_window(doctor.id, window_id, db)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/availability/time-off', response_model=list[TimeOffResponse])
def list_my_time_off(
    include_past: bool = Query(default=False),
    doctor: Doctor = Depends(require_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        upcoming_from = None if include_past else datetime.now(timezone.utc)
        return availability_store.list_time_off(doctor.id, db, upcoming_from=upcoming_from)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/availability/time-off', response_model=TimeOffResponse, status_code=status.HTTP_201_CREATED)
def create_time_off(
    data: CreateTimeOffRequest,
    doctor: Doctor = Depends(require_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return availability_store.add_time_off(doctor.id, data.start_at, data.end_at, db, reason=data.reason)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/availability/time-off/{time_off_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_time_off(
    time_off_id: int,
    doctor: Doctor = Depends(require_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        availability_store.delete_time_off(doctor.id, time_off_id, db)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
