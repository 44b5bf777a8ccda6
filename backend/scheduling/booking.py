"""Appointment booking against therapist availability and unavailability.

A scheduled appointment always has its exact slot recorded in the therapist's
unavailability. The appointment row and the unavailability document are written
one after the other; if the second write fails the appointment is flagged with
``needs_reconciliation`` instead of being left silently orphaned.
"""

import logging
import secrets
from typing import Callable

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core.errors import (
    ConflictError,
    InternalError,
    InvalidRequestError,
    NotFoundError,
    SchedulingError,
)
from backend.models.appointment import APPOINTMENT_STATUSES, DEFAULT_APPOINTMENT_STATUS, Appointment
from backend.scheduling.store import availability_store, unavailability_store
from backend.scheduling.timeslots import (
    as_slot,
    equals,
    find_date_entry,
    is_contained_in_any,
    overlaps,
    remove_date_entry,
)

logger = logging.getLogger(__name__)

SLOT_HOLDING_STATUS = 'scheduled'
UPDATABLE_FIELDS = ('status', 'subject', 'notes')


def generate_appointment_id() -> str:
    return secrets.token_hex(16)


class BookingEngine:
    def __init__(self, db: Session, id_factory: Callable[[], str] = generate_appointment_id):
        self.db = db
        self.id_factory = id_factory
        self.availability = availability_store(db)
        self.unavailability = unavailability_store(db)

    def create_appointment(
        self,
        therapist_id: str,
        patient_id: str,
        date: str,
        time_slot: dict,
        status: str | None = None,
        subject: str | None = None,
        notes: str | None = None,
    ) -> Appointment:
        slot = as_slot(time_slot)
        status = status or DEFAULT_APPOINTMENT_STATUS
        _validate_status(status)

        self.check_bookable(therapist_id, date, slot)

        appointment = Appointment(
            appointment_id=self.id_factory(),
            therapist_id=therapist_id,
            patient_id=patient_id,
            date=date,
            slot_start=slot['start'],
            slot_end=slot['end'],
            status=status,
            subject=subject,
            notes=notes,
            needs_reconciliation=False,
        )
        self._commit_appointment(appointment, add=True)
        logger.info(
            'Booked appointment %s for therapist %s on %s %s-%s',
            appointment.appointment_id, therapist_id, date, slot['start'], slot['end'],
        )

        if status == SLOT_HOLDING_STATUS:
            self._hold_slot(appointment)

        return appointment

    def check_bookable(self, therapist_id: str, date: str, slot: dict) -> None:
        """Raise unless ``slot`` lies inside declared hours and clashes with no booked slot."""
        availability_record = self.availability.get(therapist_id)
        if availability_record is None:
            raise NotFoundError(f'No availability found for therapist with ID {therapist_id}')

        availability_entry = find_date_entry(self.availability.entries(availability_record), date)
        if availability_entry is None:
            raise InvalidRequestError(f'Therapist is not available on date {date}')

        if not is_contained_in_any(slot, availability_entry['time_slots']):
            raise InvalidRequestError("Requested time slot is not within the therapist's availability.")

        unavailability_record = self.unavailability.get(therapist_id)
        if unavailability_record is None:
            return

        booked_entry = find_date_entry(self.unavailability.entries(unavailability_record), date)
        if booked_entry is None:
            return

        clash = _find_clash(booked_entry['time_slots'], slot)
        if clash is not None:
            raise clash

    def get_appointment(self, appointment_id: str) -> Appointment:
        try:
            appointment = self.db.query(Appointment).filter(Appointment.appointment_id == appointment_id).first()
        except SQLAlchemyError as exc:
            self._fail(exc, 'Error retrieving appointment')

        if appointment is None:
            raise NotFoundError(f'No appointment found with ID {appointment_id}')
        return appointment

    def list_appointments(
        self,
        therapist_id: str | None = None,
        patient_id: str | None = None,
        date: str | None = None,
        status: str | None = None,
    ) -> list[Appointment]:
        query = self.db.query(Appointment)
        if therapist_id:
            query = query.filter(Appointment.therapist_id == therapist_id)
        if patient_id:
            query = query.filter(Appointment.patient_id == patient_id)
        if date:
            query = query.filter(Appointment.date == date)
        if status:
            query = query.filter(Appointment.status == status)

        try:
            return query.order_by(Appointment.date.asc(), Appointment.slot_start.asc()).all()
        except SQLAlchemyError as exc:
            self._fail(exc, 'Error retrieving appointments')

    def update_appointment(self, appointment_id: str, changes: dict) -> Appointment:
        """Apply status/subject/notes changes, moving the slot in or out of unavailability."""
        unknown = sorted(set(changes) - set(UPDATABLE_FIELDS))
        if unknown:
            raise InvalidRequestError(f'Fields cannot be updated: {", ".join(unknown)}')

        appointment = self.get_appointment(appointment_id)
        previous_status = appointment.status
        new_status = changes.get('status') or previous_status
        _validate_status(new_status)

        entering_hold = previous_status != SLOT_HOLDING_STATUS and new_status == SLOT_HOLDING_STATUS
        leaving_hold = previous_status == SLOT_HOLDING_STATUS and new_status != SLOT_HOLDING_STATUS

        if entering_hold:
            self.check_bookable(appointment.therapist_id, appointment.date, appointment.time_slot)

        appointment.status = new_status
        if 'subject' in changes:
            appointment.subject = changes['subject']
        if 'notes' in changes:
            appointment.notes = changes['notes']
        self._commit_appointment(appointment)

        if entering_hold:
            self._hold_slot(appointment, revert_status=previous_status)
        elif leaving_hold:
            self._release_slot(appointment.therapist_id, appointment.date, appointment.time_slot, appointment_id)

        if previous_status != new_status:
            logger.info('Appointment %s moved from %s to %s', appointment_id, previous_status, new_status)
        return appointment

    def delete_appointment(self, appointment_id: str) -> str:
        appointment = self.get_appointment(appointment_id)
        held_slot = appointment.status == SLOT_HOLDING_STATUS
        therapist_id, date, slot = appointment.therapist_id, appointment.date, appointment.time_slot

        try:
            self.db.delete(appointment)
            self.db.commit()
        except SQLAlchemyError as exc:
            self._fail(exc, 'Error deleting appointment')

        logger.info('Deleted appointment %s', appointment_id)

        if held_slot:
            self._release_slot(therapist_id, date, slot, appointment_id)
        return appointment_id

    def _commit_appointment(self, appointment: Appointment, add: bool = False) -> None:
        try:
            if add:
                self.db.add(appointment)
            self.db.commit()
            self.db.refresh(appointment)
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError('Time slot is already booked.') from exc
        except SQLAlchemyError as exc:
            self._fail(exc, 'Error saving appointment')

    def _hold_slot(self, appointment: Appointment, revert_status: str | None = None) -> None:
        """Record the appointment's slot as booked, re-checking against the stored bookings.

        A clash found here means another request took an overlapping slot after
        ``check_bookable`` ran. The appointment is then withdrawn: a new one is
        deleted, an updated one gets ``revert_status`` back.
        """
        slot = appointment.time_slot
        clash = None
        try:
            record = self.unavailability.get(appointment.therapist_id)
            entries = self.unavailability.entries(record)
            entry = find_date_entry(entries, appointment.date)
            if entry is not None:
                clash = _find_clash(entry['time_slots'], slot)

            if clash is None:
                if entry is not None:
                    entry['time_slots'].append(slot)
                else:
                    entries.append({'date': appointment.date, 'time_slots': [slot]})

                if record is None:
                    self.unavailability.create(appointment.therapist_id, entries)
                else:
                    self.unavailability.save(record, entries)
        except ConflictError as exc:
            clash = exc
        except SchedulingError as exc:
            self._flag_for_reconciliation(appointment)
            raise InternalError(
                'Appointment saved but its time slot could not be recorded as booked; '
                'it has been flagged for reconciliation.',
                payload={'appointmentId': appointment.appointment_id},
                error=exc.message,
            ) from exc

        if clash is not None:
            self._withdraw(appointment, revert_status)
            raise clash

    def _withdraw(self, appointment: Appointment, revert_status: str | None) -> None:
        appointment_id, date, slot = appointment.appointment_id, appointment.date, appointment.time_slot
        try:
            if revert_status is None:
                self.db.delete(appointment)
            else:
                appointment.status = revert_status
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Could not withdraw appointment %s', appointment_id)
            self._flag_for_reconciliation(appointment)
            raise InternalError(
                'Appointment clashes with a booked slot and could not be withdrawn; '
                'it has been flagged for reconciliation.',
                payload={'appointmentId': appointment_id},
                error=str(exc),
            ) from exc

        logger.warning(
            'Withdrew appointment %s: slot %s-%s on %s was booked concurrently',
            appointment_id, slot['start'], slot['end'], date,
        )

    def _release_slot(self, therapist_id: str, date: str, slot: dict, appointment_id: str) -> None:
        try:
            record = self.unavailability.get(therapist_id)
            entries = self.unavailability.entries(record)
            entry = find_date_entry(entries, date)

            if record is None or entry is None or not any(equals(booked, slot) for booked in entry['time_slots']):
                logger.warning(
                    'No booked slot %s-%s on %s to release for appointment %s',
                    slot['start'], slot['end'], date, appointment_id,
                )
                return

            remaining = [booked for booked in entry['time_slots'] if not equals(booked, slot)]
            if remaining:
                entry['time_slots'] = remaining
            else:
                entries = remove_date_entry(entries, date)
            self.unavailability.save(record, entries)
        except SchedulingError as exc:
            logger.error(
                'Failed to release slot %s-%s on %s for appointment %s: %s',
                slot['start'], slot['end'], date, appointment_id, exc.message,
            )
            raise InternalError(
                'Appointment updated but its time slot could not be released.',
                payload={'appointmentId': appointment_id},
                error=exc.message,
            ) from exc

    def _flag_for_reconciliation(self, appointment: Appointment) -> None:
        logger.error('Flagging appointment %s for reconciliation', appointment.appointment_id)
        try:
            appointment.needs_reconciliation = True
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception('Could not flag appointment %s for reconciliation', appointment.appointment_id)

    def _fail(self, exc: SQLAlchemyError, message: str):
        self.db.rollback()
        logger.exception(message)
        raise InternalError(message, error=str(exc)) from exc


def _validate_status(status: str) -> None:
    if status not in APPOINTMENT_STATUSES:
        raise InvalidRequestError(f'Invalid appointment status: {status}')


def _find_clash(booked_slots: list[dict], slot: dict) -> ConflictError | None:
    if any(equals(booked, slot) for booked in booked_slots):
        return ConflictError('Time slot is already booked.')

    clashing = [as_slot(booked) for booked in booked_slots if overlaps(booked, slot)]
    if clashing:
        return ConflictError(
            'Requested time slot overlaps an existing booking.',
            payload={'overlappingSlots': clashing},
        )
    return None
