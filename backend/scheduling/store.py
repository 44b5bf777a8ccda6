"""Per-therapist slot store access with optimistic concurrency."""

import logging
from typing import Type

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core.errors import ConflictError, InternalError
from backend.models.availability import (
    SlotStoreMixin,
    TherapistAvailability,
    TherapistUnavailability,
    utc_now,
)
from backend.scheduling.timeslots import copy_entries

logger = logging.getLogger(__name__)


class SlotStore:
    """Reads and writes one kind of per-therapist slot document.

    ``label`` names the store in messages and ``field`` is the key the entry list
    is exposed under in API payloads.
    """

    def __init__(self, db: Session, model: Type[SlotStoreMixin], label: str, field: str):
        self.db = db
        self.model = model
        self.label = label
        self.field = field

    def get(self, therapist_id: str):
        try:
            return self.db.query(self.model).filter(self.model.therapist_id == therapist_id).first()
        except SQLAlchemyError as exc:
            self._fail(exc, f'Error fetching {self.label}')

    def entries(self, record) -> list[dict]:
        return copy_entries(record.entries if record is not None else [])

    def create(self, therapist_id: str, entries: list[dict]):
        record = self.model(therapist_id=therapist_id, entries=copy_entries(entries), version=1)
        try:
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError(
                f'{self.label.capitalize()} for therapist {therapist_id} was modified concurrently, retry the request.',
            ) from exc
        except SQLAlchemyError as exc:
            self._fail(exc, f'Error saving {self.label}')

        logger.info('Created %s document for therapist %s', self.label, therapist_id)
        return record

    def save(self, record, entries: list[dict]):
        expected_version = record.version
        try:
            result = self.db.execute(
                update(self.model)
                .where(
                    self.model.therapist_id == record.therapist_id,
                    self.model.version == expected_version,
                )
                .values(entries=copy_entries(entries), version=expected_version + 1, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self.db.rollback()
                raise ConflictError(
                    f'{self.label.capitalize()} for therapist {record.therapist_id} was modified concurrently, '
                    'retry the request.',
                )
            self.db.commit()
            self.db.refresh(record)
        except SQLAlchemyError as exc:
            self._fail(exc, f'Error saving {self.label}')

        return record

    def to_document(self, record) -> dict:
        return {
            'therapistId': record.therapist_id,
            self.field: self.entries(record),
            'version': record.version,
            'createdAt': record.created_at.isoformat() if record.created_at else None,
            'updatedAt': record.updated_at.isoformat() if record.updated_at else None,
        }

    def _fail(self, exc: SQLAlchemyError, message: str):
        self.db.rollback()
        logger.exception('%s store failure', self.label)
        raise InternalError(message, error=str(exc)) from exc


def availability_store(db: Session) -> SlotStore:
    return SlotStore(db, TherapistAvailability, 'availability', 'availability')


def unavailability_store(db: Session) -> SlotStore:
    return SlotStore(db, TherapistUnavailability, 'unavailability', 'unavailability')
