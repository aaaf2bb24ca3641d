"""Document API router: upload, list, download, delete."""

from __future__ import annotations

import logging
from typing import Annotated
from urllib.parse import quote
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, File, Form, UploadFile, status
from fastapi.responses import Response

from shipment_portal.api.dependencies import AppSettings, CurrentActor, DocumentsService
from shipment_portal.api.schemas.documents import (
    DocumentListResponse,
    DocumentResponse,
    DocumentUploadResponse,
)
from shipment_portal.api.schemas.shipments import MessageResponse

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/documents",
    tags=["documents"],
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Insufficient permissions"},
        404: {"description": "Shipment or document not found"},
    },
)


@router.post(
    "/{shipment_id}/upload",
    response_model=DocumentUploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Attach a document to a shipment",
    description="Accepts one PDF or JPEG file up to the configured size limit.",
)
async def upload_document(
    shipment_id: UUID,
    actor: CurrentActor,
    service: DocumentsService,
    settings: AppSettings,
    file: Annotated[UploadFile | None, File(description="PDF or JPEG file")] = None,
    document_type: Annotated[str | None, Form(description="Document type")] = None,
) -> DocumentUploadResponse:
    data = None
    file_name = None
    content_type = None
    if file is not None:
        # Read one byte past the limit so oversized files are detected without buffering them whole
        data = await file.read(settings.uploads.max_bytes + 1)
        file_name = file.filename
        content_type = file.content_type
        await file.close()

    document = await service.upload(
        actor,
        shipment_id,
        document_type=document_type,
        file_name=file_name,
        content_type=content_type,
        data=data,
    )
    return DocumentUploadResponse(
        message="Document uploaded successfully",
        document=DocumentResponse.model_validate(document),
    )


@router.get(
    "/{shipment_id}",
    response_model=DocumentListResponse,
    summary="List a shipment's documents",
)
async def list_documents(
    shipment_id: UUID,
    actor: CurrentActor,
    service: DocumentsService,
) -> DocumentListResponse:
    listing = await service.list_for_shipment(actor, shipment_id)
    return DocumentListResponse(
        shipment_id=listing.shipment_id,
        documents=[DocumentResponse.model_validate(d) for d in listing.documents],
        count=listing.count,
    )


@router.get(
    "/{document_id}/download",
    summary="Download a document",
    response_class=Response,
    responses={200: {"content": {"application/pdf": {}, "image/jpeg": {}}}},
)
async def download_document(
    document_id: UUID,
    actor: CurrentActor,
    service: DocumentsService,
) -> Response:
    download = await service.download(actor, document_id)
    return Response(
        content=download.content,
        media_type=download.mime_type,
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(download.file_name)}",
            "Content-Length": str(len(download.content)),
        },
    )


@router.delete("/{document_id}", response_model=MessageResponse, summary="Delete a document")
async def delete_document(
    document_id: UUID,
    actor: CurrentActor,
    service: DocumentsService,
) -> MessageResponse:
    await service.delete(actor, document_id)
    return MessageResponse(message="Document deleted successfully")
