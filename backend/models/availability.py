"""Therapist availability and unavailability model definitions."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, String
from backend.database import Base


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SlotStoreMixin:
    """Columns shared by the per-therapist slot stores.

    ``entries`` holds a list of ``{"date": "YYYY-MM-DD", "time_slots": [{"start", "end"}]}``.
    ``version`` is bumped on every write and checked to detect concurrent edits.
    """

    id = Column(Integer, primary_key=True)
    therapist_id = Column(String, unique=True, index=True, nullable=False)
    entries = Column(JSON, nullable=False, default=list)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class TherapistAvailability(SlotStoreMixin, Base):
    """Represents the hours a therapist has declared open for booking."""
    __tablename__ = "therapist_availability"


class TherapistUnavailability(SlotStoreMixin, Base):
    """Represents intervals a therapist has already committed."""
    __tablename__ = "therapist_unavailability"
