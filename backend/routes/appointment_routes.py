from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from backend.core.errors import NotFoundError
from backend.database import ensure_database_ready, get_db
from backend.scheduling.booking import BookingEngine
from backend.scheduling.timeslots import TimeSlot, validate_date_string

router = APIRouter(tags=['appointments'])

MAX_APPOINTMENT_NOTES_LENGTH = 600

AppointmentStatus = Literal['scheduled', 'completed', 'cancelled', 'rescheduled']


def _normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValueError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

    return normalized


class CreateAppointmentRequest(BaseModel):
    therapist_id: str = Field(alias='therapistId')
    patient_id: str = Field(alias='patientId')
    date: str
    time_slot: TimeSlot = Field(alias='timeSlot')
    status: AppointmentStatus | None = None
    subject: str | None = None
    notes: str | None = None

    class Config:
        extra = 'forbid'
        populate_by_name = True

    @field_validator('therapist_id', 'patient_id')
    @classmethod
    def validate_identifier(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Therapist and patient IDs are required.')
        return normalized

    @field_validator('date')
    @classmethod
    def validate_date(cls, value: str) -> str:
        return validate_date_string(value)

    @field_validator('subject')
    @classmethod
    def validate_subject(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class UpdateAppointmentRequest(BaseModel):
    status: AppointmentStatus | None = None
    subject: str | None = None
    notes: str | None = None

    class Config:
        extra = 'forbid'

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


def get_booking_engine(db: Session = Depends(get_db)) -> BookingEngine:
    return BookingEngine(db)


@router.post('', status_code=status.HTTP_201_CREATED)
def create_appointment(data: CreateAppointmentRequest, engine: BookingEngine = Depends(get_booking_engine)):
    ensure_database_ready()

    appointment = engine.create_appointment(
        therapist_id=data.therapist_id,
        patient_id=data.patient_id,
        date=data.date,
        time_slot=data.time_slot.model_dump(),
        status=data.status,
        subject=data.subject,
        notes=data.notes,
    )

    return {'message': 'Appointment created successfully', 'appointment': appointment.to_document()}


@router.get('')
def list_appointments(
    therapist_id: str | None = Query(default=None, alias='therapistId'),
    patient_id: str | None = Query(default=None, alias='patientId'),
    date: str | None = Query(default=None),
    appointment_status: str | None = Query(default=None, alias='status'),
    engine: BookingEngine = Depends(get_booking_engine),
):
    ensure_database_ready()

    appointments = engine.list_appointments(
        therapist_id=therapist_id,
        patient_id=patient_id,
        date=date,
        status=appointment_status,
    )
    if not appointments:
        raise NotFoundError('No appointments found for the given criteria')

    return [appointment.to_document() for appointment in appointments]


@router.get('/{appointment_id}')
def get_appointment(appointment_id: str, engine: BookingEngine = Depends(get_booking_engine)):
    ensure_database_ready()
    return engine.get_appointment(appointment_id).to_document()


@router.patch('/{appointment_id}')
def update_appointment(
    appointment_id: str,
    data: UpdateAppointmentRequest,
    engine: BookingEngine = Depends(get_booking_engine),
):
    ensure_database_ready()

    appointment = engine.update_appointment(appointment_id, data.model_dump(exclude_unset=True))

    return {'message': 'Appointment updated successfully', 'appointment': appointment.to_document()}


@router.delete('/{appointment_id}')
def delete_appointment(appointment_id: str, engine: BookingEngine = Depends(get_booking_engine)):
    ensure_database_ready()

    engine.delete_appointment(appointment_id)

    return {'message': 'Appointment deleted successfully', 'appointmentId': appointment_id}
