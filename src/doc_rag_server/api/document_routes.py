"""
Document Routes

Upload, list, inspect and delete documents. Uploads carry already-extracted
text; chunking happens inline and indexing is queued.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ..core.errors import DocumentNotFoundError
from ..db.document_store import DocumentStore
from ..ingestion.service import IngestionService
from .dependencies import get_document_store, get_ingestion_service
from .models import (
    DocumentDeleted,
    DocumentList,
    DocumentStatusView,
    DocumentSummary,
    DocumentUploadRequest,
    Envelope,
)

router = APIRouter(prefix="/documents", tags=["documents"])


@router.post("", response_model=Envelope[DocumentSummary])
async def upload_document(
    req: DocumentUploadRequest,
    ingestion: IngestionService = Depends(get_ingestion_service),
) -> Envelope[DocumentSummary]:
    record = await ingestion.upload_document(req.filename, req.text)
    return Envelope(data=DocumentSummary.from_record(record))


@router.get("", response_model=Envelope[DocumentList])
async def list_documents(
    documents: DocumentStore = Depends(get_document_store),
) -> Envelope[DocumentList]:
    records = await documents.list()
    return Envelope(data=DocumentList(documents=records, total=len(records)))


@router.get("/{document_id}/status", response_model=Envelope[DocumentStatusView])
async def document_status(
    document_id: str,
    documents: DocumentStore = Depends(get_document_store),
) -> Envelope[DocumentStatusView]:
    record = await documents.get(document_id)
    if record is None:
        raise DocumentNotFoundError(document_id)

    return Envelope(
        data=DocumentStatusView(
            document_id=record.id,
            status=record.status,
            chunk_count=record.chunk_count,
            job_id=record.job_id,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
    )


@router.delete("/{document_id}", response_model=Envelope[DocumentDeleted])
async def delete_document(
    document_id: str,
    ingestion: IngestionService = Depends(get_ingestion_service),
) -> Envelope[DocumentDeleted]:
    deleted = await ingestion.delete_document(document_id)
    return Envelope(data=DocumentDeleted(document_id=document_id, deleted_chunks=deleted))
