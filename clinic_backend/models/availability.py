"""Availability model definitions."""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer, String, Time
from clinic_backend.database import Base, UTCDateTime


class AvailabilityWindow(Base):
    """A recurring weekly range, in clinic-local wall-clock time, when a doctor takes bookings."""
    __tablename__ = "doctor_availability"
    __table_args__ = (
        CheckConstraint("weekday >= 0 AND weekday <= 6", name="ck_doctor_availability_weekday"),
        CheckConstraint("start_time < end_time", name="ck_doctor_availability_range"),
        Index("idx_doctor_availability_weekday", "doctor_id", "weekday"),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    weekday = Column(Integer, nullable=False)  # 0=Sunday .. 6=Saturday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)


class TimeOff(Base):
    """An ad-hoc [start_at, end_at) UTC interval when a doctor is away."""
    __tablename__ = "doctor_time_off"
    __table_args__ = (
        CheckConstraint("start_at < end_at", name="ck_doctor_time_off_range"),
        Index("idx_doctor_time_off_range", "doctor_id", "start_at", "end_at"),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    start_at = Column(UTCDateTime, nullable=False)
    end_at = Column(UTCDateTime, nullable=False)
    reason = Column(String)
