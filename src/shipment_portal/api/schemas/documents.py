"""Pydantic schemas for document endpoints."""

from __future__ import annotations

# NOTE: datetime and UUID must remain at runtime for Pydantic validation
from datetime import datetime  # noqa: TC003
from uuid import UUID  # noqa: TC003

from pydantic import BaseModel, ConfigDict

from shipment_portal.db.models.base import DocumentType  # noqa: TC001


class DocumentResponse(BaseModel):
    """Metadata of an attached file. The storage key is never exposed."""

    model_config = ConfigDict(from_attributes=True)

    document_id: UUID
    shipment_id: UUID
    document_type: DocumentType
    file_name: str
    file_size: int
    mime_type: str
    sha256: str
    uploaded_by: UUID | None = None
    uploaded_at: datetime


class DocumentUploadResponse(BaseModel):
    message: str
    document: DocumentResponse


class DocumentListResponse(BaseModel):
    shipment_id: UUID
    documents: list[DocumentResponse]
    count: int
