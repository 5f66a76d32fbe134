"""Write-time validation and commit of appointment bookings.

Every rule is re-derived from the database when the request arrives; a slot
list computed earlier is never trusted. The time-off and window checks only
produce friendlier errors: two requests racing for the same slot are settled
by the overlap guard on the ``appointments`` table, whose violation becomes a
``ConflictError``.
"""

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.core.errors import AvailabilityError, ConflictError, ValidationError
from clinic_backend.core.timezones import ensure_utc, local_weekday, to_local
from clinic_backend.models.appointment import Appointment, AppointmentStatus, is_overlap_violation
from clinic_backend.services import availability_store
from clinic_backend.services.slots import SLOT_DURATION, overlaps, window_bounds

logger = logging.getLogger(__name__)


def normalize_start(requested_start: datetime) -> datetime:
    if not isinstance(requested_start, datetime):
        raise ValidationError('Appointment start must be a date and time.')
    return ensure_utc(requested_start).replace(second=0, microsecond=0)


def _ensure_no_time_off(doctor_id: int, start_at: datetime, end_at: datetime, db: Session) -> None:
    for time_off in availability_store.time_off_overlapping(doctor_id, start_at, end_at, db):
        if overlaps(start_at, end_at, time_off.start_at, time_off.end_at):
            raise AvailabilityError('The doctor is on time off at the requested time.')


def _ensure_within_window(doctor, start_at: datetime, end_at: datetime, db: Session) -> None:
    zone = availability_store.get_clinic_zone(doctor, db)
    local_start = to_local(start_at, zone)
    local_day = local_start.date()

    windows = availability_store.windows_for_weekday(doctor.id, local_weekday(local_day), db)
    if not windows:
        raise AvailabilityError('The doctor does not work on the requested day.')

    # Same per-date conversion the slot generator uses, so any listed slot passes.
    for window in windows:
        window_start, window_end = window_bounds(local_day, window.start_time, window.end_time, zone)
        if window_start <= start_at and end_at <= window_end:
            return

    raise AvailabilityError(
        f'{local_start:%H:%M} is outside the doctor\'s working hours in {zone.key}.'
    )


def acknowledge_stale_declines(doctor_id: int, patient_id: str, db: Session) -> int:
    """Dismiss unread decline notices between this doctor and patient."""
    updated = db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.patient_id == patient_id,
        Appointment.status == AppointmentStatus.DECLINED.value,
        Appointment.patient_ack.is_(False),
    ).update({Appointment.patient_ack: True}, synchronize_session=False)
    db.commit()
    return updated


def create_appointment(
    doctor_id: int,
    clinic_id: int,
    patient_id: str,
    requested_start: datetime,
    db: Session,
    now: datetime | None = None,
) -> Appointment:
    """Validate and commit a booking of the 30-minute slot at ``requested_start``.

    Raises ``ValidationError`` for bad input or a clinic/doctor mismatch,
    ``AvailabilityError`` when the slot is outside the doctor's schedule and
    ``ConflictError`` when an active appointment already overlaps it. When
    ``now`` is given the slot must start after it.
    """
    start_at = normalize_start(requested_start)
    end_at = start_at + SLOT_DURATION

    if not patient_id:
        raise ValidationError('Patient is required.')

    if now is not None and start_at <= ensure_utc(now):
        raise ValidationError('Appointments must be scheduled in the future.')

    doctor = availability_store.get_doctor(doctor_id, db)
    if doctor is None:
        raise ValidationError('Doctor not found.')

    if doctor.clinic_id != clinic_id:
        raise ValidationError('Doctor does not practice at the requested clinic.')

    _ensure_no_time_off(doctor.id, start_at, end_at, db)
    _ensure_within_window(doctor, start_at, end_at, db)

    appointment = Appointment(
        doctor_id=doctor.id,
        patient_id=patient_id,
        clinic_id=clinic_id,
        start_at=start_at,
        end_at=end_at,
        status=AppointmentStatus.SCHEDULED.value,
        patient_ack=False,
    )
    db.add(appointment)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if not is_overlap_violation(exc):
            logger.error('Booking for doctor %s at %s violated a constraint: %s', doctor.id, start_at.isoformat(), exc.orig)
            raise
        logger.info('Slot %s for doctor %s was already booked.', start_at.isoformat(), doctor.id)
        raise ConflictError() from exc
    db.refresh(appointment)

    logger.info(
        'Booked appointment %s for doctor %s at %s.',
        appointment.id,
        doctor.id,
        start_at.isoformat(),
    )

    try:
        acknowledge_stale_declines(doctor.id, patient_id, db)
    except SQLAlchemyError:
        db.rollback()
        logger.exception('Could not dismiss earlier declines for appointment %s.', appointment.id)

    return appointment


def list_appointments_for_patient(patient_id: str, db: Session) -> list[Appointment]:
    return db.query(Appointment).filter(
        Appointment.patient_id == patient_id,
    ).order_by(Appointment.start_at.asc()).all()


def list_appointments_for_doctor(doctor_id: int, db: Session) -> list[Appointment]:
    return db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
    ).order_by(Appointment.start_at.asc()).all()
