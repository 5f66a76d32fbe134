"""Clinic model definitions."""

from sqlalchemy import Column, Integer, String
from clinic_backend.database import Base


class Clinic(Base):
    """A clinic and the IANA timezone its doctors' schedules are written in."""
    __tablename__ = "clinics"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, default="")
    timezone = Column(String, nullable=False, default="UTC")
