"""
Admin Routes

Read-only operational views: aggregate statistics, the passages indexed for
a document, and the state of an ingestion job.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ..core.errors import DocumentNotFoundError, JobNotFoundError
from ..services import Services
from .dependencies import get_services
from .models import (
    AdminStats,
    ChunkView,
    DocumentChunks,
    Envelope,
    JobStatusView,
)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/stats", response_model=Envelope[AdminStats])
async def stats(services: Services = Depends(get_services)) -> Envelope[AdminStats]:
    """
    Document totals plus index size and job counts by status.

    Job counts are empty when no queue is configured.
    """
    document_stats = await services.documents.get_stats()
    indexed_passages = await services.index.count()
    jobs = await services.queue.counts() if services.queue is not None else {}

    return Envelope(
        data=AdminStats(
            **document_stats.model_dump(),
            indexed_passages=indexed_passages,
            jobs=jobs,
        )
    )


@router.get("/documents/{document_id}/chunks", response_model=Envelope[DocumentChunks])
async def document_chunks(
    document_id: str,
    services: Services = Depends(get_services),
) -> Envelope[DocumentChunks]:
    if await services.documents.get(document_id) is None:
        raise DocumentNotFoundError(document_id)

    passages = await services.index.list_passages(document_id)
    return Envelope(
        data=DocumentChunks(
            document_id=document_id,
            chunks=[
                ChunkView(
                    passage_id=p.passage_id,
                    chunk_index=p.chunk_index,
                    page_number=p.page_number,
                    text=p.text,
                )
                for p in passages
            ],
        )
    )


@router.get("/jobs/{job_id}", response_model=Envelope[JobStatusView])
async def job_status(
    job_id: str,
    services: Services = Depends(get_services),
) -> Envelope[JobStatusView]:
    job = await services.queue.get(job_id) if services.queue is not None else None
    if job is None:
        raise JobNotFoundError(job_id)
    return Envelope(data=JobStatusView.from_record(job))
