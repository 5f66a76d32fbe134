"""Appointment lifecycle: who may move an appointment to which status."""

import logging
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy.orm import Session

from clinic_backend.core.errors import (
    AuthorizationError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from clinic_backend.models.appointment import Appointment, AppointmentStatus
from clinic_backend.services import availability_store

logger = logging.getLogger(__name__)


class ActorRole(str, Enum):
    PATIENT = "patient"
    DOCTOR = "doctor"


ALLOWED_TRANSITIONS: dict[ActorRole, dict[AppointmentStatus, frozenset[AppointmentStatus]]] = {
    ActorRole.PATIENT: {
        AppointmentStatus.SCHEDULED: frozenset({AppointmentStatus.CANCELLED}),
        AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.CANCELLED}),
    },
    ActorRole.DOCTOR: {
        AppointmentStatus.SCHEDULED: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.DECLINED}),
        AppointmentStatus.CONFIRMED: frozenset({
            AppointmentStatus.COMPLETED,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.NO_SHOW,
        }),
    },
}

TERMINAL_STATUSES = frozenset({
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELLED,
    AppointmentStatus.DECLINED,
    AppointmentStatus.NO_SHOW,
})


def parse_status(value: str | AppointmentStatus) -> AppointmentStatus:
    try:
        return AppointmentStatus(value)
    except ValueError as exc:
        raise ValidationError(f'Unknown appointment status: {value!r}.') from exc


def parse_role(value: str | ActorRole) -> ActorRole:
    try:
        return ActorRole(value)
    except ValueError as exc:
        raise AuthorizationError('Only patients and doctors can change appointments.') from exc


def allowed_transitions(role: ActorRole | str, current: AppointmentStatus | str) -> frozenset[AppointmentStatus]:
    return ALLOWED_TRANSITIONS[parse_role(role)].get(parse_status(current), frozenset())


def can_transition(role: ActorRole | str, current: AppointmentStatus | str, target: AppointmentStatus | str) -> bool:
    return parse_status(target) in allowed_transitions(role, current)


def _get_appointment(appointment_id: int, db: Session) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise NotFoundError('Appointment not found.')
    return appointment


def _ensure_owner(appointment: Appointment, caller_id: str, role: ActorRole, db: Session) -> None:
    if role is ActorRole.PATIENT:
        if appointment.patient_id != caller_id:
            raise AuthorizationError('Only the patient who booked this appointment can change it.')
        return

    doctor = availability_store.get_doctor(appointment.doctor_id, db)
    if doctor is None or doctor.user_id != caller_id:
        raise AuthorizationError('Only the doctor for this appointment can change it.')


def transition_appointment(
    appointment_id: int,
    caller_id: str,
    caller_role: ActorRole | str,
    new_status: AppointmentStatus | str,
    db: Session,
) -> Appointment:
    target = parse_status(new_status)
    role = parse_role(caller_role)
    appointment = _get_appointment(appointment_id, db)

    _ensure_owner(appointment, caller_id, role, db)

    current = parse_status(appointment.status)
    if target not in allowed_transitions(role, current):
        raise InvalidTransitionError(
            f'A {role.value} cannot change an appointment from {current.value} to {target.value}.'
        )

    # Conditional write: a concurrent transition that landed first wins.
    updated = db.query(Appointment).filter(
        Appointment.id == appointment.id,
        Appointment.status == current.value,
    ).update(
        {Appointment.status: target.value, Appointment.updated_at: datetime.now(timezone.utc)},
        synchronize_session=False,
    )
    if updated != 1:
        db.rollback()
        raise InvalidTransitionError('The appointment changed while you were updating it. Reload and try again.')
    db.commit()
    db.refresh(appointment)

    logger.info(
        'Appointment %s moved from %s to %s by %s %s.',
        appointment.id,
        current.value,
        target.value,
        role.value,
        caller_id,
    )
    return appointment


def acknowledge_decline(appointment_id: int, caller_id: str, db: Session) -> Appointment:
    """Let the patient dismiss the notice that their request was declined."""
    appointment = _get_appointment(appointment_id, db)

    if appointment.patient_id != caller_id:
        raise AuthorizationError('Only the patient who booked this appointment can dismiss it.')

    if appointment.status != AppointmentStatus.DECLINED.value:
        raise InvalidStateError('Only declined appointments can be dismissed.')

    if not appointment.patient_ack:
        appointment.patient_ack = True
        db.commit()
        db.refresh(appointment)

    return appointment
