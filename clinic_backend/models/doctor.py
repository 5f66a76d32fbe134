"""Doctor model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String
from clinic_backend.database import Base


class Doctor(Base):
    """A doctor practicing at exactly one clinic."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False, index=True)
    user_id = Column(String, unique=True, index=True)  # identity subject of the doctor's login
    full_name = Column(String, nullable=False, default="")
