"""Data access for doctors' weekly windows and time off.

Reads here feed the slot generator and the booking validator; the write
helpers back the doctor's schedule settings. Nothing is cached between calls.
"""

import logging
from datetime import datetime, time
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from clinic_backend.core.errors import NotFoundError, ValidationError
from clinic_backend.core.timezones import ensure_utc, resolve_zone
from clinic_backend.models.appointment import ACTIVE_STATUSES, Appointment
from clinic_backend.models.availability import AvailabilityWindow, TimeOff
from clinic_backend.models.clinic import Clinic
from clinic_backend.models.doctor import Doctor

logger = logging.getLogger(__name__)

MAX_TIME_OFF_REASON_LENGTH = 200


def get_doctor(doctor_id: int, db: Session) -> Doctor | None:
    return db.query(Doctor).filter(Doctor.id == doctor_id).first()


def get_doctor_for_user(user_id: str, db: Session) -> Doctor | None:
    return db.query(Doctor).filter(Doctor.user_id == user_id).first()


def get_clinic_zone(doctor: Doctor, db: Session) -> ZoneInfo:
    clinic = db.query(Clinic).filter(Clinic.id == doctor.clinic_id).first()
    if clinic is None:
        logger.warning('Doctor %s references missing clinic %s.', doctor.id, doctor.clinic_id)
        return resolve_zone(None)
    return resolve_zone(clinic.timezone)


def windows_for_weekday(doctor_id: int, weekday: int, db: Session) -> list[AvailabilityWindow]:
    return db.query(AvailabilityWindow).filter(
        AvailabilityWindow.doctor_id == doctor_id,
        AvailabilityWindow.weekday == weekday,
    ).order_by(AvailabilityWindow.start_time.asc()).all()


def time_off_overlapping(doctor_id: int, range_start: datetime, range_end: datetime, db: Session) -> list[TimeOff]:
    return db.query(TimeOff).filter(
        TimeOff.doctor_id == doctor_id,
        TimeOff.start_at < range_end,
        TimeOff.end_at > range_start,
    ).order_by(TimeOff.start_at.asc()).all()


def busy_appointments(doctor_id: int, range_start: datetime, range_end: datetime, db: Session) -> list[Appointment]:
    return db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.status.in_([status.value for status in ACTIVE_STATUSES]),
        Appointment.start_at < range_end,
        Appointment.end_at > range_start,
    ).order_by(Appointment.start_at.asc()).all()


def list_windows(doctor_id: int, db: Session) -> list[AvailabilityWindow]:
    return db.query(AvailabilityWindow).filter(
        AvailabilityWindow.doctor_id == doctor_id,
    ).order_by(AvailabilityWindow.weekday.asc(), AvailabilityWindow.start_time.asc()).all()


def validate_window(weekday: int, start_time: time, end_time: time) -> None:
    if weekday < 0 or weekday > 6:
        raise ValidationError('Weekday must be between 0 (Sunday) and 6 (Saturday).')

    if start_time >= end_time:
        raise ValidationError('Availability must end after it starts.')


def _ensure_no_overlap(weekday: int, start_time: time, end_time: time, existing: list[tuple[time, time]]) -> None:
    for other_start, other_end in existing:
        if start_time < other_end and end_time > other_start:
            raise ValidationError(
                f'Availability {start_time:%H:%M}-{end_time:%H:%M} overlaps '
                f'{other_start:%H:%M}-{other_end:%H:%M} on weekday {weekday}.'
            )


def add_window(doctor_id: int, weekday: int, start_time: time, end_time: time, db: Session) -> AvailabilityWindow:
    validate_window(weekday, start_time, end_time)

    existing = [(window.start_time, window.end_time) for window in windows_for_weekday(doctor_id, weekday, db)]
    _ensure_no_overlap(weekday, start_time, end_time, existing)

    window = AvailabilityWindow(
        doctor_id=doctor_id,
        weekday=weekday,
        start_time=start_time,
        end_time=end_time,
    )
    db.add(window)
    db.commit()
    db.refresh(window)
    return window


def delete_window(doctor_id: int, window_id: int, db: Session) -> None:
    window = db.query(AvailabilityWindow).filter(
        AvailabilityWindow.id == window_id,
        AvailabilityWindow.doctor_id == doctor_id,
    ).first()

    if window is None:
        raise NotFoundError('Availability window not found.')

    db.delete(window)
    db.commit()


def replace_weekly_schedule(
    doctor_id: int,
    windows: list[tuple[int, time, time]],
    db: Session,
) -> list[AvailabilityWindow]:
    """Swap the doctor's whole week for ``windows`` in a single transaction."""
    by_weekday: dict[int, list[tuple[time, time]]] = {}
    for weekday, start_time, end_time in windows:
        validate_window(weekday, start_time, end_time)
        accepted = by_weekday.setdefault(weekday, [])
        _ensure_no_overlap(weekday, start_time, end_time, accepted)
        accepted.append((start_time, end_time))

    db.query(AvailabilityWindow).filter(AvailabilityWindow.doctor_id == doctor_id).delete(synchronize_session=False)
    for weekday, start_time, end_time in windows:
        db.add(AvailabilityWindow(doctor_id=doctor_id, weekday=weekday, start_time=start_time, end_time=end_time))
    db.commit()

    return list_windows(doctor_id, db)


def list_time_off(doctor_id: int, db: Session, upcoming_from: datetime | None = None) -> list[TimeOff]:
    query = db.query(TimeOff).filter(TimeOff.doctor_id == doctor_id)
    if upcoming_from is not None:
        query = query.filter(TimeOff.end_at > ensure_utc(upcoming_from))
    return query.order_by(TimeOff.start_at.asc()).all()


def add_time_off(
    doctor_id: int,
    start_at: datetime,
    end_at: datetime,
    db: Session,
    reason: str | None = None,
) -> TimeOff:
    start_at = ensure_utc(start_at)
    end_at = ensure_utc(end_at)

    if start_at >= end_at:
        raise ValidationError('Time off must end after it starts.')

    if reason is not None:
        reason = reason.strip() or None
    if reason and len(reason) > MAX_TIME_OFF_REASON_LENGTH:
        raise ValidationError(f'Reason must be {MAX_TIME_OFF_REASON_LENGTH} characters or fewer.')

    time_off = TimeOff(doctor_id=doctor_id, start_at=start_at, end_at=end_at, reason=reason)
    db.add(time_off)
    db.commit()
    db.refresh(time_off)
    return time_off


def delete_time_off(doctor_id: int, time_off_id: int, db: Session) -> None:
    time_off = db.query(TimeOff).filter(
        TimeOff.id == time_off_id,
        TimeOff.doctor_id == doctor_id,
    ).first()

    if time_off is None:
        raise NotFoundError('Time off not found.')

    db.delete(time_off)
    db.commit()
