"""Generic CRUD over schema-less documents grouped in named collections.

Collaborator resources (patients, therapists, sessions, ...) carry no
cross-document invariants, so they share one table and are filtered in Python.
"""

import logging
import secrets
from typing import Any, Callable

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core.errors import ConflictError, InternalError
from backend.models.document import StoredDocument

logger = logging.getLogger(__name__)


def generate_document_id(size: int = 16) -> str:
    return secrets.token_hex(size)


class DocumentCollection:
    def __init__(self, db: Session, collection: str, id_field: str):
        self.db = db
        self.collection = collection
        self.id_field = id_field

    def create(self, body: dict[str, Any]) -> dict[str, Any]:
        document_id = body.get(self.id_field) or generate_document_id()
        stored_body = {**body, self.id_field: document_id}
        record = StoredDocument(collection=self.collection, document_id=document_id, body=stored_body)

        try:
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError(f'{self.id_field} {document_id} already exists') from exc
        except SQLAlchemyError as exc:
            self._fail(exc, f'Error saving {self.collection} document')

        logger.info('Created %s document %s', self.collection, document_id)
        return self._to_document(record)

    def get(self, document_id: str) -> dict[str, Any] | None:
        record = self._get_record(document_id)
        return self._to_document(record) if record is not None else None

    def find_one(self, field: str, value: Any) -> dict[str, Any] | None:
        for document in self.find():
            if document.get(field) == value:
                return document
        return None

    def find(
        self,
        filters: dict[str, Any] | None = None,
        predicate: Callable[[dict[str, Any]], bool] | None = None,
        sort_key: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        """Return documents whose fields equal every non-None filter value."""
        try:
            records = self.db.query(StoredDocument).filter(
                StoredDocument.collection == self.collection,
            ).order_by(StoredDocument.id.asc()).all()
        except SQLAlchemyError as exc:
            self._fail(exc, f'Error retrieving {self.collection} documents')

        active_filters = {key: value for key, value in (filters or {}).items() if value is not None}
        documents = [
            document
            for document in (self._to_document(record) for record in records)
            if all(document.get(key) == value for key, value in active_filters.items())
            and (predicate is None or predicate(document))
        ]

        if sort_key:
            documents = _sorted_by(documents, sort_key, descending)
        return documents

    def update(self, document_id: str, changes: dict[str, Any]) -> dict[str, Any] | None:
        record = self._get_record(document_id)
        if record is None:
            return None

        body = {**record.body, **changes, self.id_field: record.document_id}
        return self._save(record, body)

    def replace(self, document: dict[str, Any]) -> dict[str, Any] | None:
        record = self._get_record(document[self.id_field])
        if record is None:
            return None

        body = {key: value for key, value in document.items() if key not in ('createdAt', 'updatedAt')}
        return self._save(record, body)

    def delete(self, document_id: str) -> bool:
        record = self._get_record(document_id)
        if record is None:
            return False

        try:
            self.db.delete(record)
            self.db.commit()
        except SQLAlchemyError as exc:
            self._fail(exc, f'Error deleting {self.collection} document')

        logger.info('Deleted %s document %s', self.collection, document_id)
        return True

    def _get_record(self, document_id: str) -> StoredDocument | None:
        try:
            return self.db.query(StoredDocument).filter(
                StoredDocument.collection == self.collection,
                StoredDocument.document_id == document_id,
            ).first()
        except SQLAlchemyError as exc:
            self._fail(exc, f'Error retrieving {self.collection} document')

    def _save(self, record: StoredDocument, body: dict[str, Any]) -> dict[str, Any]:
        try:
            record.body = body
            self.db.commit()
            self.db.refresh(record)
        except SQLAlchemyError as exc:
            self._fail(exc, f'Error updating {self.collection} document')
        return self._to_document(record)

    def _to_document(self, record: StoredDocument) -> dict[str, Any]:
        return {
            **record.body,
            self.id_field: record.document_id,
            'createdAt': record.created_at.isoformat() if record.created_at else None,
            'updatedAt': record.updated_at.isoformat() if record.updated_at else None,
        }

    def _fail(self, exc: SQLAlchemyError, message: str):
        self.db.rollback()
        logger.exception(message)
        raise InternalError(message, error=str(exc)) from exc


def _sorted_by(documents: list[dict[str, Any]], key: str, descending: bool) -> list[dict[str, Any]]:
    present = [document for document in documents if document.get(key) is not None]
    missing = [document for document in documents if document.get(key) is None]
    return sorted(present, key=lambda document: document[key], reverse=descending) + missing
