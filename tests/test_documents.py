"""Tests for shipment document attachments.

Tests cover:
- Upload validation order (file, type, size, MIME/extension)
- Ownership on upload and delete
- Visibility on list and download
- Storage failures mapped to domain errors
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from shipment_portal.core.config import UploadSettings
from shipment_portal.db.models.base import DocumentType, UserRole
from shipment_portal.services.audit_log import AuditAction
from shipment_portal.services.documents import DocumentService
from shipment_portal.services.errors import (
    InternalError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from shipment_portal.services.storage import ObjectNotFoundError, StorageError, StoredObject
from tests.factories import create_mock_session, make_actor, make_document, make_result

PDF = b"%PDF-1.7\n%test document\n"


def _documents(session, storage=None, max_bytes=10 * 1024 * 1024):
    audit = MagicMock()
    audit.record = AsyncMock()
    storage = storage or MagicMock()
    service = DocumentService(
        session,
        storage=storage,
        audit=audit,
        upload_settings=UploadSettings(max_bytes=max_bytes),
    )
    return service, audit, storage


def _stored(key="shipments/x/abc.pdf") -> StoredObject:
    return StoredObject(key=key, sha256_digest="a" * 64, size_bytes=len(PDF), etag='"etag"')


class TestUploadValidation:
    """Upload checks run before the shipment is even loaded."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("kwargs", "message"),
        [
            (
                {"document_type": "invoice", "file_name": None, "content_type": None, "data": None},
                "No file provided",
            ),
            (
                {
                    "document_type": None,
                    "file_name": "inv.pdf",
                    "content_type": "application/pdf",
                    "data": PDF,
                },
                "Document type is required",
            ),
            (
                {
                    "document_type": "passport",
                    "file_name": "inv.pdf",
                    "content_type": "application/pdf",
                    "data": PDF,
                },
                "Invalid document type",
            ),
            (
                {
                    "document_type": "invoice",
                    "file_name": "inv.png",
                    "content_type": "image/png",
                    "data": PDF,
                },
                "Invalid file type",
            ),
            (
                {
                    "document_type": "invoice",
                    "file_name": "inv.exe",
                    "content_type": "application/pdf",
                    "data": PDF,
                },
                "Invalid file type",
            ),
        ],
    )
    async def test_rejected_uploads(self, kwargs, message):
        session = create_mock_session()
        service, _, storage = _documents(session)

        with pytest.raises(ValidationError) as exc_info:
            await service.upload(make_actor(), uuid4(), **kwargs)

        assert exc_info.value.message == message
        session.execute.assert_not_awaited()
        storage.put.assert_not_called()

    @pytest.mark.asyncio
    async def test_file_too_large(self):
        service, _, _ = _documents(create_mock_session(), max_bytes=10 * 1024 * 1024)

        with pytest.raises(ValidationError) as exc_info:
            await service.upload(
                make_actor(),
                uuid4(),
                document_type="invoice",
                file_name="big.pdf",
                content_type="application/pdf",
                data=b"0" * (10 * 1024 * 1024 + 1),
            )

        assert exc_info.value.message == "File too large"
        assert exc_info.value.details == ["Maximum file size is 10MB"]


class TestUpload:
    """Tests for storing an accepted upload."""

    @pytest.mark.asyncio
    async def test_owner_uploads_document(self):
        actor = make_actor()
        shipment_id = uuid4()
        session = create_mock_session(make_result(one=SimpleNamespace(created_by=actor.user_id)))
        storage = MagicMock()
        storage.put.return_value = _stored()
        service, audit, _ = _documents(session, storage)

        document = await service.upload(
            actor,
            shipment_id,
            document_type="bill_of_lading",
            file_name="BL 001.PDF",
            content_type="application/pdf; charset=binary",
            data=PDF,
        )

        assert document.document_type == DocumentType.BILL_OF_LADING
        assert document.file_name == "BL 001.PDF"
        assert document.mime_type == "application/pdf"
        assert document.storage_key == "shipments/x/abc.pdf"
        assert document.uploaded_by == actor.user_id
        storage.put.assert_called_once()
        assert storage.put.call_args.kwargs["extension"] == ".pdf"
        assert audit.record.await_args.args[1] == AuditAction.UPLOAD_DOCUMENT
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_jpeg_accepted(self):
        actor = make_actor(UserRole.ADMIN)
        session = create_mock_session(make_result(one=SimpleNamespace(created_by=uuid4())))
        storage = MagicMock()
        storage.put.return_value = _stored("shipments/x/abc.jpg")
        service, _, _ = _documents(session, storage)

        document = await service.upload(
            actor,
            uuid4(),
            document_type="other",
            file_name="scan.jpeg",
            content_type="image/jpeg",
            data=b"\xff\xd8\xff",
        )
        assert document.mime_type == "image/jpeg"

    @pytest.mark.asyncio
    async def test_unknown_shipment(self):
        session = create_mock_session(make_result(one=None))
        service, _, storage = _documents(session)

        with pytest.raises(NotFoundError):
            await service.upload(
                make_actor(),
                uuid4(),
                document_type="invoice",
                file_name="inv.pdf",
                content_type="application/pdf",
                data=PDF,
            )
        storage.put.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("role", [UserRole.CLEARANCE_MANAGER, UserRole.ACCOUNTS])
    async def test_non_owner_cannot_upload(self, role):
        session = create_mock_session(make_result(one=SimpleNamespace(created_by=uuid4())))
        service, _, storage = _documents(session)

        with pytest.raises(PermissionDeniedError):
            await service.upload(
                make_actor(role),
                uuid4(),
                document_type="invoice",
                file_name="inv.pdf",
                content_type="application/pdf",
                data=PDF,
            )
        storage.put.assert_not_called()

    @pytest.mark.asyncio
    async def test_storage_failure(self):
        actor = make_actor()
        session = create_mock_session(make_result(one=SimpleNamespace(created_by=actor.user_id)))
        storage = MagicMock()
        storage.put.side_effect = StorageError("Upload failed", operation="upload")
        service, _, _ = _documents(session, storage)

        with pytest.raises(InternalError):
            await service.upload(
                actor,
                uuid4(),
                document_type="invoice",
                file_name="inv.pdf",
                content_type="application/pdf",
                data=PDF,
            )
        session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_insert_removes_stored_file(self):
        actor = make_actor()
        session = create_mock_session(make_result(one=SimpleNamespace(created_by=actor.user_id)))
        session.flush.side_effect = RuntimeError("db down")
        storage = MagicMock()
        storage.put.return_value = _stored("shipments/x/orphan.pdf")
        service, _, _ = _documents(session, storage)

        with pytest.raises(RuntimeError, match="db down"):
            await service.upload(
                actor,
                uuid4(),
                document_type="invoice",
                file_name="inv.pdf",
                content_type="application/pdf",
                data=PDF,
            )
        storage.delete.assert_called_once_with("shipments/x/orphan.pdf")
        session.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_commit_keeps_original_error_when_cleanup_fails(self):
        actor = make_actor()
        session = create_mock_session(make_result(one=SimpleNamespace(created_by=actor.user_id)))
        session.commit.side_effect = RuntimeError("commit failed")
        storage = MagicMock()
        storage.put.return_value = _stored()
        storage.delete.side_effect = StorageError("Delete failed", operation="delete")
        service, _, _ = _documents(session, storage)

        with pytest.raises(RuntimeError, match="commit failed"):
            await service.upload(
                actor,
                uuid4(),
                document_type="invoice",
                file_name="inv.pdf",
                content_type="application/pdf",
                data=PDF,
            )
        storage.delete.assert_called_once()


class TestReadAndDelete:
    """Tests for listing, downloading, and deleting documents."""

    @pytest.mark.asyncio
    async def test_list_hidden_from_other_clearance_manager(self):
        session = create_mock_session(make_result(one=SimpleNamespace(created_by=uuid4())))
        service, _, _ = _documents(session)

        with pytest.raises(NotFoundError):
            await service.list_for_shipment(make_actor(), uuid4())

    @pytest.mark.asyncio
    async def test_list_for_accounts(self):
        shipment_id = uuid4()
        documents = [make_document(shipment_id), make_document(shipment_id)]
        session = create_mock_session(
            make_result(one=SimpleNamespace(created_by=uuid4())),
            make_result(items=documents),
        )
        service, _, _ = _documents(session)

        listing = await service.list_for_shipment(make_actor(UserRole.ACCOUNTS), shipment_id)

        assert listing.count == 2
        assert listing.documents == documents

    @pytest.mark.asyncio
    async def test_download(self):
        actor = make_actor()
        document = make_document(uuid4(), uploaded_by=actor.user_id)
        session = create_mock_session(
            make_result(one=(document, actor.user_id)),
            make_result(one=SimpleNamespace(created_by=actor.user_id)),
        )
        storage = MagicMock()
        storage.get.return_value = (PDF, "application/pdf")
        service, audit, _ = _documents(session, storage)

        download = await service.download(actor, document.document_id)

        assert download.content == PDF
        assert download.file_name == document.file_name
        storage.get.assert_called_once_with(document.storage_key, expected_digest=document.sha256)
        assert audit.record.await_args.args[1] == AuditAction.DOWNLOAD_DOCUMENT

    @pytest.mark.asyncio
    async def test_download_missing_file(self):
        actor = make_actor(UserRole.ACCOUNTS)
        document = make_document(uuid4())
        session = create_mock_session(
            make_result(one=(document, uuid4())),
            make_result(one=SimpleNamespace(created_by=uuid4())),
        )
        storage = MagicMock()
        storage.get.side_effect = ObjectNotFoundError("gone", key=document.storage_key)
        service, _, _ = _documents(session, storage)

        with pytest.raises(NotFoundError) as exc_info:
            await service.download(actor, document.document_id)
        assert exc_info.value.message == "File not found"

    @pytest.mark.asyncio
    async def test_shipment_creator_deletes_document(self):
        actor = make_actor()
        document = make_document(uuid4(), uploaded_by=uuid4())
        session = create_mock_session(make_result(one=(document, actor.user_id)))
        service, audit, storage = _documents(session)

        await service.delete(actor, document.document_id)

        session.delete.assert_awaited_once_with(document)
        storage.delete.assert_called_once_with(document.storage_key)
        assert audit.record.await_args.args[1] == AuditAction.DELETE_DOCUMENT

    @pytest.mark.asyncio
    async def test_stranger_cannot_delete(self):
        document = make_document(uuid4(), uploaded_by=uuid4())
        session = create_mock_session(make_result(one=(document, uuid4())))
        service, _, storage = _documents(session)

        with pytest.raises(PermissionDeniedError):
            await service.delete(make_actor(), document.document_id)
        storage.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_unknown_document(self):
        service, _, _ = _documents(create_mock_session(make_result(one=None)))

        with pytest.raises(NotFoundError):
            await service.delete(make_actor(UserRole.ADMIN), uuid4())
