"""Work-time and unavailability maintenance.

Every batch is validated in full before either store document is written.
"""

import logging

from sqlalchemy.orm import Session

from backend.core.errors import ConflictError, InvalidRequestError, NotFoundError
from backend.scheduling.store import availability_store, unavailability_store
from backend.scheduling.timeslots import (
    as_slot,
    equals,
    find_date_entry,
    find_equal,
    is_contained_in_any,
    overlapping_pairs,
    overlapping_within,
    remove_date_entry,
)

logger = logging.getLogger(__name__)


def _require_slots(time_slots: list[dict]) -> list[dict]:
    if not time_slots:
        raise InvalidRequestError('At least one time slot is required.')
    return [as_slot(slot) for slot in time_slots]


class SlotMaintenance:
    """Insert and delete operations on a therapist's availability and unavailability."""

    def __init__(self, db: Session):
        self.availability = availability_store(db)
        self.unavailability = unavailability_store(db)

    def get_availability(self, therapist_id: str) -> dict:
        record = self.availability.get(therapist_id)
        if record is None:
            raise NotFoundError(f'No availability found for therapist with ID {therapist_id}')
        return self.availability.to_document(record)

    def get_unavailability(self, therapist_id: str) -> dict:
        record = self.unavailability.get(therapist_id)
        if record is None:
            raise NotFoundError(f'No unavailability found for therapist with ID {therapist_id}')
        return self.unavailability.to_document(record)

    def insert_work_time(self, therapist_id: str, date: str, time_slots: list[dict]) -> tuple[dict, bool]:
        """Add declared working hours for a date.

        Returns the stored availability document and whether it was newly created.
        Rejects the whole batch when any new slot overlaps a slot already declared
        for that date, reporting every overlapping pair.
        """
        new_slots = _require_slots(time_slots)
        record = self.availability.get(therapist_id)

        if record is None:
            record = self.availability.create(therapist_id, [{'date': date, 'time_slots': new_slots}])
            logger.info('Added %d work time slot(s) for therapist %s on %s', len(new_slots), therapist_id, date)
            return self.availability.to_document(record), True

        entries = self.availability.entries(record)
        entry = find_date_entry(entries, date)

        if entry is not None:
            conflicts = overlapping_pairs(entry['time_slots'], new_slots)
            if conflicts:
                logger.warning('Rejected overlapping work time for therapist %s on %s', therapist_id, date)
                raise ConflictError('Conflicting time slots found', payload={'overlappingSlots': conflicts})
            entry['time_slots'].extend(new_slots)
        else:
            entries.append({'date': date, 'time_slots': new_slots})

        record = self.availability.save(record, entries)
        logger.info('Added %d work time slot(s) for therapist %s on %s', len(new_slots), therapist_id, date)
        return self.availability.to_document(record), False

    def delete_work_time(self, therapist_id: str, date: str, time_slots: list[dict] | None = None) -> dict:
        """Remove declared hours; every requested slot must exist exactly."""
        record = self.availability.get(therapist_id)
        if record is None:
            raise NotFoundError(f'No availability found for therapist with ID {therapist_id}')

        entries = self.availability.entries(record)
        entry = find_date_entry(entries, date)
        if entry is None:
            raise NotFoundError(f'No availability found for date {date}')

        if time_slots:
            requested = [as_slot(slot) for slot in time_slots]
            missing = [slot for slot in requested if find_equal(slot, entry['time_slots']) is None]
            if missing:
                raise NotFoundError('One or more time slots do not exist', payload={'nonExistingSlots': missing})

            entry['time_slots'] = [
                slot for slot in entry['time_slots']
                if not any(equals(slot, target) for target in requested)
            ]
            if not entry['time_slots']:
                entries = remove_date_entry(entries, date)
        else:
            entries = remove_date_entry(entries, date)

        record = self.availability.save(record, entries)
        logger.info('Deleted work time for therapist %s on %s', therapist_id, date)
        return self.availability.to_document(record)

    def insert_unavailability(self, therapist_id: str, date: str, time_slots: list[dict]) -> tuple[dict, bool]:
        """Block time manually, independent of appointment creation.

        Every slot must sit inside declared availability, and none may overlap an
        existing block or another slot of the same batch.
        """
        new_slots = _require_slots(time_slots)

        availability_record = self.availability.get(therapist_id)
        if availability_record is None:
            raise NotFoundError(f'No availability found for therapist with ID {therapist_id}')

        availability_entry = find_date_entry(self.availability.entries(availability_record), date)
        if availability_entry is None:
            raise InvalidRequestError(f'Therapist is not available on date {date}')

        outside = [slot for slot in new_slots if not is_contained_in_any(slot, availability_entry['time_slots'])]
        if outside:
            raise InvalidRequestError(
                "One or more time slots are not within the therapist's availability.",
                payload={'invalidSlots': outside},
            )

        batch_conflicts = overlapping_within(new_slots)
        if batch_conflicts:
            raise ConflictError(
                'Requested time slots overlap each other.',
                payload={'overlappingSlots': batch_conflicts},
            )

        record = self.unavailability.get(therapist_id)
        if record is None:
            record = self.unavailability.create(therapist_id, [{'date': date, 'time_slots': new_slots}])
            logger.info('Blocked %d slot(s) for therapist %s on %s', len(new_slots), therapist_id, date)
            return self.unavailability.to_document(record), True

        entries = self.unavailability.entries(record)
        entry = find_date_entry(entries, date)

        if entry is not None:
            conflicts = overlapping_pairs(entry['time_slots'], new_slots)
            if conflicts:
                if any(equals(pair['existing'], pair['requested']) for pair in conflicts):
                    message = 'Duplicate time slots found for the same date.'
                else:
                    message = 'Time slots overlap existing unavailability.'
                logger.warning('Rejected unavailability for therapist %s on %s: %s', therapist_id, date, message)
                raise ConflictError(message, payload={'overlappingSlots': conflicts})
            entry['time_slots'].extend(new_slots)
        else:
            entries.append({'date': date, 'time_slots': new_slots})

        record = self.unavailability.save(record, entries)
        logger.info('Blocked %d slot(s) for therapist %s on %s', len(new_slots), therapist_id, date)
        return self.unavailability.to_document(record), False

    def delete_time_slot(self, therapist_id: str, date: str, time_slots: list[dict] | None = None) -> dict:
        """Remove blocked slots, ignoring requested slots that are not stored.

        Fails only when none of the requested slots exist. Returns the document
        plus the slots actually removed and the ones ignored.
        """
        record = self.unavailability.get(therapist_id)
        if record is None:
            raise NotFoundError(f'No unavailability found for therapist with ID {therapist_id}')

        entries = self.unavailability.entries(record)
        entry = find_date_entry(entries, date)
        if entry is None:
            raise NotFoundError(f'No unavailability found for therapist on date {date}')

        deleted: list[dict] = []
        ignored: list[dict] = []

        if time_slots:
            for slot in (as_slot(slot) for slot in time_slots):
                if find_equal(slot, entry['time_slots']) is not None:
                    deleted.append(slot)
                else:
                    ignored.append(slot)

            if not deleted:
                raise NotFoundError('The specified time slots do not exist in the database.')

            entry['time_slots'] = [
                slot for slot in entry['time_slots']
                if not any(equals(slot, target) for target in deleted)
            ]
            if not entry['time_slots']:
                entries = remove_date_entry(entries, date)
        else:
            deleted = entry['time_slots']
            entries = remove_date_entry(entries, date)

        record = self.unavailability.save(record, entries)
        logger.info('Released %d blocked slot(s) for therapist %s on %s', len(deleted), therapist_id, date)
        return {
            'unavailability': self.unavailability.to_document(record),
            'deletedSlots': deleted,
            'ignoredSlots': ignored,
        }
