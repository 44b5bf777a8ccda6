"""Generic document model used by the collaborator collections."""

from sqlalchemy import JSON, Column, DateTime, Integer, String, UniqueConstraint
from backend.database import Base
from backend.models.availability import utc_now


class StoredDocument(Base):
    """Represents one schema-less document inside a named collection."""
    __tablename__ = "documents"
    __table_args__ = (
        UniqueConstraint('collection', 'document_id', name='uq_documents_collection_document_id'),
    )

    id = Column(Integer, primary_key=True)
    collection = Column(String, index=True, nullable=False)
    document_id = Column(String, nullable=False)
    body = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)
