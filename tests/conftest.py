import os
from datetime import datetime, time, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite://')

from clinic_backend.database import Base  # noqa: E402
from clinic_backend.models.appointment import Appointment, AppointmentStatus  # noqa: E402
from clinic_backend.models.availability import AvailabilityWindow, TimeOff  # noqa: E402
from clinic_backend.models.clinic import Clinic  # noqa: E402
from clinic_backend.models.doctor import Doctor  # noqa: E402

MONDAY = 1
TUESDAY = 2
SUNDAY = 0


@pytest.fixture
def db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def add_clinic(db, timezone_name: str = 'America/New_York', clinic_id: int | None = None) -> Clinic:
    clinic = Clinic(id=clinic_id, name='Downtown Clinic', timezone=timezone_name)
    db.add(clinic)
    db.commit()
    db.refresh(clinic)
    return clinic


def add_doctor(db, clinic: Clinic, user_id: str = 'doctor-user-1', doctor_id: int | None = None) -> Doctor:
    doctor = Doctor(id=doctor_id, clinic_id=clinic.id, user_id=user_id, full_name='Dr. Rivera')
    db.add(doctor)
    db.commit()
    db.refresh(doctor)
    return doctor


def add_window(db, doctor: Doctor, weekday: int, start: time, end: time) -> AvailabilityWindow:
    window = AvailabilityWindow(doctor_id=doctor.id, weekday=weekday, start_time=start, end_time=end)
    db.add(window)
    db.commit()
    db.refresh(window)
    return window


def add_time_off(db, doctor: Doctor, start_at: datetime, end_at: datetime) -> TimeOff:
    time_off = TimeOff(doctor_id=doctor.id, start_at=start_at, end_at=end_at)
    db.add(time_off)
    db.commit()
    db.refresh(time_off)
    return time_off


def add_appointment(
    db,
    doctor: Doctor,
    start_at: datetime,
    patient_id: str = 'patient-1',
    status: AppointmentStatus = AppointmentStatus.SCHEDULED,
    patient_ack: bool = False,
) -> Appointment:
    appointment = Appointment(
        doctor_id=doctor.id,
        patient_id=patient_id,
        clinic_id=doctor.clinic_id,
        start_at=start_at,
        end_at=start_at + timedelta(minutes=30),
        status=status.value,
        patient_ack=patient_ack,
    )
    db.add(appointment)
    db.commit()
    db.refresh(appointment)
    return appointment


@pytest.fixture
def new_york_doctor(db):
    """Doctor at a New York clinic working Mondays 09:00-12:00 local time."""
    clinic = add_clinic(db, 'America/New_York')
    doctor = add_doctor(db, clinic)
    add_window(db, doctor, MONDAY, time(9, 0), time(12, 0))
    return doctor
