from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, PositiveInt, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.auth.dependencies import Principal, get_current_principal, require_patient
from clinic_backend.core.errors import AuthorizationError
from clinic_backend.database import get_db
from clinic_backend.models.appointment import AppointmentStatus
from clinic_backend.rate_limit import limit_booking_requests
from clinic_backend.routes.common import database_unavailable, ensure_database_ready
from clinic_backend.services import availability_store
from clinic_backend.services.appointment_states import ActorRole, acknowledge_decline, transition_appointment
from clinic_backend.services.booking import (
    create_appointment,
    list_appointments_for_doctor,
    list_appointments_for_patient,
)

router = APIRouter(tags=['appointments'])


class CreateAppointmentRequest(BaseModel):
    doctor_id: PositiveInt
    clinic_id: PositiveInt
    start_at: datetime


class UpdateAppointmentRequest(BaseModel):
    status: AppointmentStatus | None = None
    patient_ack: bool | None = None

    @field_validator('patient_ack')
    @classmethod
    def validate_patient_ack(cls, value: bool | None) -> bool | None:
        if value is False:
            raise ValueError('patient_ack can only be set to true.')
        return value

    @model_validator(mode='after')
    def require_change(self) -> 'UpdateAppointmentRequest':
        if self.status is None and self.patient_ack is None:
            raise ValueError('Either status or patient_ack must be provided.')
        # Acknowledgement is patient-only on declined appointments, which no transition accepts.
        if self.status is not None and self.patient_ack is not None:
            raise ValueError('Send either status or patient_ack, not both.')
        return self


class AppointmentResponse(BaseModel):
    id: int
    doctor_id: int
    patient_id: str
    clinic_id: int
    start_at: datetime
    end_at: datetime
    status: str
    patient_ack: bool

    class Config:
        from_attributes = True


@router.post('/appointments', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def book_appointment(
    data: CreateAppointmentRequest,
    principal: Principal = Depends(require_patient),
    db: Session = Depends(get_db),
):
    limit_booking_requests(principal.user_id)
    ensure_database_ready()

    try:
        return create_appointment(
            data.doctor_id,
            data.clinic_id,
            principal.user_id,
            data.start_at,
            db,
            now=datetime.now(timezone.utc),
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/appointments', response_model=list[AppointmentResponse])
def list_my_appointments(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        if principal.role is ActorRole.PATIENT:
            return list_appointments_for_patient(principal.user_id, db)

        doctor = availability_store.get_doctor_for_user(principal.user_id, db)
        if doctor is None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='No doctor profile is linked to this account.',
            )
        return list_appointments_for_doctor(doctor.id, db)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.patch('/appointments/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        if data.status is not None:
            return transition_appointment(
                appointment_id,
                principal.user_id,
                principal.role,
                data.status,
                db,
            )

        if principal.role is not ActorRole.PATIENT:
            raise AuthorizationError('Only the patient can dismiss a declined appointment.')
        return acknowledge_decline(appointment_id, principal.user_id, db)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
