from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from clinic_backend.auth import jwt_handler
from clinic_backend.database import get_db
from clinic_backend.models.doctor import Doctor
from clinic_backend.services import availability_store
from clinic_backend.services.appointment_states import ActorRole

security = HTTPBearer()


@dataclass(frozen=True)
class Principal:
    """The authenticated caller as vouched for by the identity provider."""
    user_id: str
    role: ActorRole


def principal_from_token(token: str) -> Principal:
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    try:
        role = ActorRole(payload.get("role"))
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="Invalid token role") from exc

    return Principal(user_id=str(subject), role=role)


def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Principal:
    return principal_from_token(credentials.credentials)


def require_patient(principal: Principal = Depends(get_current_principal)) -> Principal:
    if principal.role is not ActorRole.PATIENT:
        raise HTTPException(status_code=403, detail="Only patients can book appointments.")
    return principal


def require_doctor(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> Doctor:
    if principal.role is not ActorRole.DOCTOR:
        raise HTTPException(status_code=403, detail="Only doctors can manage availability.")

    doctor = availability_store.get_doctor_for_user(principal.user_id, db)
    if doctor is None:
        raise HTTPException(status_code=403, detail="No doctor profile is linked to this account.")
    return doctor
