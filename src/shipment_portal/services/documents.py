"""Shipment document attachments.

Uploads are validated before anything is stored: type, size, MIME type and
extension are all checked, then the shipment is loaded and ownership is
enforced. File bytes go to the object store; the Document row keeps the key
and digest.
"""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import select

from shipment_portal.db.models.base import DocumentType
from shipment_portal.db.models.shipments import Document, Shipment
from shipment_portal.services.audit_log import AuditAction, EntityType
from shipment_portal.services.authz import Action, can_view_shipment, require_allowed
from shipment_portal.services.errors import InternalError, NotFoundError, ValidationError
from shipment_portal.services.storage import ObjectNotFoundError, StorageError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from shipment_portal.core.config import UploadSettings
    from shipment_portal.services.audit_log import AuditLogService
    from shipment_portal.services.authz import Actor
    from shipment_portal.services.storage import DocumentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DocumentListing:
    """Documents attached to one shipment, newest first."""

    shipment_id: uuid.UUID
    documents: list[Document]

    @property
    def count(self) -> int:
        return len(self.documents)


@dataclass(frozen=True, slots=True)
class DocumentDownload:
    """File bytes plus the metadata needed to serve them."""

    file_name: str
    mime_type: str
    content: bytes


class DocumentService:
    """Upload, list, download, and delete shipment documents."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        storage: DocumentStore,
        audit: AuditLogService,
        upload_settings: UploadSettings,
    ) -> None:
        self._session = session
        self._storage = storage
        self._audit = audit
        self._settings = upload_settings

    async def upload(
        self,
        actor: Actor,
        shipment_id: uuid.UUID,
        *,
        document_type: str | None,
        file_name: str | None,
        content_type: str | None,
        data: bytes | None,
    ) -> Document:
        """Attach a file to a shipment.

        Raises:
            ValidationError: Missing file or type, file too large, or type not allowed.
            NotFoundError: No such shipment.
            PermissionDeniedError: Actor is not the shipment creator or an admin.
            InternalError: The object store rejected the file.
        """
        if not data or not file_name:
            raise ValidationError("No file provided")
        if not document_type:
            raise ValidationError("Document type is required")
        try:
            doc_type = DocumentType(document_type)
        except ValueError as e:
            raise ValidationError(
                "Invalid document type",
                details=[f"Allowed types: {', '.join(t.value for t in DocumentType)}"],
            ) from e

        if len(data) > self._settings.max_bytes:
            raise ValidationError(
                "File too large",
                details=[f"Maximum file size is {self._settings.max_bytes // (1024 * 1024)}MB"],
            )

        extension = os.path.splitext(file_name)[1].lower()
        mime_type = (content_type or "").split(";")[0].strip().lower()
        if (
            mime_type not in self._settings.allowed_mime_types
            or extension not in self._settings.allowed_extensions
        ):
            raise ValidationError(
                "Invalid file type",
                details=["Only PDF and JPEG files are allowed"],
            )

        result = await self._session.execute(
            select(Shipment.created_by).where(Shipment.shipment_id == shipment_id)
        )
        row = result.one_or_none()
        if row is None:
            raise NotFoundError("Shipment", shipment_id)
        require_allowed(actor, Action.UPLOAD_DOCUMENT, is_owner=actor.owns(row.created_by))

        try:
            stored = await asyncio.to_thread(
                self._storage.put,
                shipment_id,
                data,
                extension=extension,
                content_type=mime_type,
                file_name=file_name,
            )
        except StorageError as e:
            logger.error(
                "Document upload to storage failed",
                extra={"shipment_id": str(shipment_id), "error": e.message},
            )
            msg = "Failed to store document"
            raise InternalError(msg) from e

        try:
            document = Document(
                document_id=uuid.uuid4(),
                shipment_id=shipment_id,
                document_type=doc_type,
                file_name=os.path.basename(file_name),
                storage_key=stored.key,
                file_size=stored.size_bytes,
                mime_type=mime_type,
                sha256=stored.sha256_digest,
                uploaded_by=actor.user_id,
                uploaded_at=datetime.now(UTC),
            )
            self._session.add(document)
            await self._session.flush()

            logger.info(
                "Document uploaded",
                extra={
                    "shipment_id": str(shipment_id),
                    "document_id": str(document.document_id),
                    "document_type": doc_type.value,
                    "size_bytes": stored.size_bytes,
                },
            )

            await self._audit.record(
                actor,
                AuditAction.UPLOAD_DOCUMENT,
                EntityType.DOCUMENT,
                document.document_id,
                details={
                    "shipment_id": str(shipment_id),
                    "document_type": doc_type.value,
                    "file_name": document.file_name,
                },
            )
            await self._session.commit()
        except Exception:
            await self._discard_stored(stored.key)
            raise
        return document

    async def list_for_shipment(self, actor: Actor, shipment_id: uuid.UUID) -> DocumentListing:
        await self._load_visible_shipment(actor, shipment_id)
        result = await self._session.execute(
            select(Document)
            .where(Document.shipment_id == shipment_id)
            .order_by(Document.uploaded_at.desc())
        )
        return DocumentListing(shipment_id=shipment_id, documents=list(result.scalars().all()))

    async def download(self, actor: Actor, document_id: uuid.UUID) -> DocumentDownload:
        """Fetch a document's bytes, verified against the recorded digest."""
        document, _ = await self._load_document(document_id)
        await self._load_visible_shipment(actor, document.shipment_id)

        try:
            content, _ = await asyncio.to_thread(
                self._storage.get, document.storage_key, expected_digest=document.sha256
            )
        except ObjectNotFoundError as e:
            logger.error(
                "Document file missing from storage",
                extra={"document_id": str(document_id), "storage_key": document.storage_key},
            )
            raise NotFoundError("File") from e
        except StorageError as e:
            logger.error(
                "Document download failed",
                extra={"document_id": str(document_id), "error": e.message},
            )
            msg = "Failed to read document"
            raise InternalError(msg) from e

        await self._audit.record(
            actor,
            AuditAction.DOWNLOAD_DOCUMENT,
            EntityType.DOCUMENT,
            document_id,
            details={"shipment_id": str(document.shipment_id), "file_name": document.file_name},
        )
        await self._session.commit()

        return DocumentDownload(
            file_name=document.file_name,
            mime_type=document.mime_type,
            content=content,
        )

    async def delete(self, actor: Actor, document_id: uuid.UUID) -> None:
        """Delete a document. Allowed for its uploader, the shipment creator, or an admin."""
        document, shipment_owner = await self._load_document(document_id)
        is_owner = actor.owns(document.uploaded_by) or actor.owns(shipment_owner)
        require_allowed(actor, Action.DELETE_DOCUMENT, is_owner=is_owner)

        storage_key = document.storage_key
        await self._session.delete(document)
        await self._session.flush()

        await self._audit.record(
            actor,
            AuditAction.DELETE_DOCUMENT,
            EntityType.DOCUMENT,
            document_id,
            details={
                "shipment_id": str(document.shipment_id),
                "document_type": document.document_type.value,
                "file_name": document.file_name,
            },
        )
        await self._session.commit()

        logger.info(
            "Document deleted",
            extra={"document_id": str(document_id), "user_id": str(actor.user_id)},
        )

        try:
            await asyncio.to_thread(self._storage.delete, storage_key)
        except StorageError:
            logger.exception("Failed to remove document file", extra={"storage_key": storage_key})

    async def _discard_stored(self, storage_key: str) -> None:
        """Remove a file whose Document row was never committed."""
        try:
            await asyncio.to_thread(self._storage.delete, storage_key)
        except StorageError:
            logger.exception(
                "Failed to remove orphaned document file", extra={"storage_key": storage_key}
            )

    async def _load_document(self, document_id: uuid.UUID) -> tuple[Document, uuid.UUID | None]:
        result = await self._session.execute(
            select(Document, Shipment.created_by)
            .join(Shipment, Document.shipment_id == Shipment.shipment_id)
            .where(Document.document_id == document_id)
        )
        row = result.one_or_none()
        if row is None:
            raise NotFoundError("Document", document_id)
        return row[0], row[1]

    async def _load_visible_shipment(self, actor: Actor, shipment_id: uuid.UUID) -> None:
        result = await self._session.execute(
            select(Shipment.created_by).where(Shipment.shipment_id == shipment_id)
        )
        row = result.one_or_none()
        if row is None or not can_view_shipment(actor, row.created_by):
            raise NotFoundError("Shipment", shipment_id)
