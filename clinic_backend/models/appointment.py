"""Appointment model definitions."""

import logging
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Index, Integer, String, event, text
from sqlalchemy.exc import IntegrityError

from clinic_backend.database import Base, UTCDateTime

logger = logging.getLogger(__name__)

OVERLAP_GUARD_NAME = "appointments_no_overlap"
EXCLUSION_VIOLATION_PGCODE = "23P01"


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DECLINED = "declined"
    NO_SHOW = "no_show"


# Statuses that hold a doctor's time; at most one such row may cover any instant.
ACTIVE_STATUSES = (
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.COMPLETED,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Appointment(Base):
    """A booked 30-minute slot. Cancelling changes the status; rows are never deleted."""
    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint("start_at < end_at", name="ck_appointments_range"),
        CheckConstraint(
            "status IN (" + ", ".join(f"'{status.value}'" for status in AppointmentStatus) + ")",
            name="ck_appointments_status",
        ),
        Index("idx_appointments_doctor_start", "doctor_id", "start_at"),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    patient_id = Column(String, nullable=False, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False)
    start_at = Column(UTCDateTime, nullable=False)
    end_at = Column(UTCDateTime, nullable=False)
    status = Column(String, nullable=False, default=AppointmentStatus.SCHEDULED.value)
    patient_ack = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, default=_utcnow)
    updated_at = Column(UTCDateTime, default=_utcnow, onupdate=_utcnow)


def _active_status_list() -> str:
    return ", ".join(f"'{status.value}'" for status in ACTIVE_STATUSES)


def _sqlite_guard_statements() -> list[str]:
    overlap_check = (
        "SELECT RAISE(ABORT, '{name}') WHERE EXISTS ("
        " SELECT 1 FROM appointments"
        " WHERE doctor_id = NEW.doctor_id"
        " AND id IS NOT NEW.id"
        " AND status IN ({statuses})"
        " AND start_at < NEW.end_at"
        " AND end_at > NEW.start_at"
        ");"
    ).format(name=OVERLAP_GUARD_NAME, statuses=_active_status_list())
    return [
        f"CREATE TRIGGER IF NOT EXISTS {OVERLAP_GUARD_NAME}_insert "
        f"BEFORE INSERT ON appointments "
        f"WHEN NEW.status IN ({_active_status_list()}) "
        f"BEGIN {overlap_check} END",
        f"CREATE TRIGGER IF NOT EXISTS {OVERLAP_GUARD_NAME}_update "
        f"BEFORE UPDATE OF doctor_id, status, start_at, end_at ON appointments "
        f"WHEN NEW.status IN ({_active_status_list()}) "
        f"BEGIN {overlap_check} END",
    ]


def install_overlap_guard(connection) -> None:
    """Install the storage-level guard against overlapping active appointments.

    PostgreSQL gets an exclusion constraint over a ``tsrange``; SQLite, which
    serializes writers, gets BEFORE INSERT/UPDATE triggers. Both make the
    offending statement fail with an integrity error.
    """
    dialect = connection.dialect.name

    if dialect == "postgresql":
        connection.execute(text("CREATE EXTENSION IF NOT EXISTS btree_gist"))
        exists = connection.execute(
            text("SELECT 1 FROM pg_constraint WHERE conname = :name"),
            {"name": OVERLAP_GUARD_NAME},
        ).first()
        if exists is None:
            connection.execute(
                text(
                    f"ALTER TABLE appointments ADD CONSTRAINT {OVERLAP_GUARD_NAME} "
                    f"EXCLUDE USING gist (doctor_id WITH =, tsrange(start_at, end_at, '[)') WITH &&) "
                    f"WHERE (status IN ({_active_status_list()}))"
                )
            )
    elif dialect == "sqlite":
        for statement in _sqlite_guard_statements():
            connection.execute(text(statement))
    else:
        logger.warning("No appointment overlap guard available for dialect %s.", dialect)


def is_overlap_violation(exc: IntegrityError) -> bool:
    """True when ``exc`` comes from the overlap guard rather than another constraint."""
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) == EXCLUSION_VIOLATION_PGCODE:
        return True
    return OVERLAP_GUARD_NAME in str(orig)


@event.listens_for(Appointment.__table__, "after_create")
def _create_overlap_guard(target, connection, **kw) -> None:
    install_overlap_guard(connection)
