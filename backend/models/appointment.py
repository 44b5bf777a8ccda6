"""Appointment model definitions."""

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, text
from backend.database import Base
from backend.models.availability import utc_now

APPOINTMENT_STATUSES = ('scheduled', 'completed', 'cancelled', 'rescheduled')
DEFAULT_APPOINTMENT_STATUS = 'scheduled'


class Appointment(Base):
    """Represents a booked appointment between a therapist and a patient."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index(
            'uq_appointments_scheduled_slot',
            'therapist_id',
            'date',
            'slot_start',
            'slot_end',
            unique=True,
            sqlite_where=text("status = 'scheduled'"),
            postgresql_where=text("status = 'scheduled'"),
        ),
    )

    id = Column(Integer, primary_key=True)
    appointment_id = Column(String, unique=True, index=True, nullable=False)
    therapist_id = Column(String, nullable=False)
    patient_id = Column(String, nullable=False)
    date = Column(String, nullable=False)
    slot_start = Column(String, nullable=False)
    slot_end = Column(String, nullable=False)
    status = Column(String, nullable=False, default=DEFAULT_APPOINTMENT_STATUS)
    subject = Column(String)
    notes = Column(String)
    needs_reconciliation = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    @property
    def time_slot(self) -> dict[str, str]:
        return {'start': self.slot_start, 'end': self.slot_end}

    def to_document(self) -> dict:
        return {
            'appointmentId': self.appointment_id,
            'therapistId': self.therapist_id,
            'patientId': self.patient_id,
            'date': self.date,
            'timeSlot': self.time_slot,
            'status': self.status,
            'subject': self.subject,
            'notes': self.notes,
            'needsReconciliation': bool(self.needs_reconciliation),
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }
