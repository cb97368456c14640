"""
API Models

Request and response schemas of the HTTP surface.

Every successful response is wrapped as `{"success": true, "data": ...}`;
failures use `{"success": false, "error": message}` (see core.errors).
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from ..db.document_store import DocumentRecord, DocumentStats
from ..db.models import DocumentStatus
from ..jobs.models import IngestionResult, JobRecord
from ..providers.llm import TokenUsage
from ..rag.models import Citation

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    success: Literal[True] = True
    data: T


# ---------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------

class DocumentUploadRequest(BaseModel):
    """Already-extracted document text. Pages may be separated by form feeds."""
    filename: str = Field(..., min_length=1, max_length=255)
    text: str = Field(..., description="Extracted document text.")

    model_config = ConfigDict(extra="forbid")


class QueryRequest(BaseModel):
    query: str = Field(..., description="Natural-language question.")
    document_id: Optional[str] = Field(
        default=None,
        description="Restrict retrieval to one document.",
    )
    top_k: Optional[int] = Field(default=None, ge=1, le=100)

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------

class DocumentSummary(BaseModel):
    document_id: str
    filename: str
    size: int
    page_count: int
    chunk_count: int
    status: DocumentStatus
    job_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: DocumentRecord) -> "DocumentSummary":
        return cls(
            document_id=record.id,
            filename=record.filename,
            size=record.size,
            page_count=record.page_count,
            chunk_count=record.chunk_count,
            status=record.status,
            job_id=record.job_id,
        )


class DocumentList(BaseModel):
    documents: List[DocumentRecord]
    total: int


class DocumentStatusView(BaseModel):
    document_id: str
    status: DocumentStatus
    chunk_count: int
    job_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class DocumentDeleted(BaseModel):
    document_id: str
    deleted_chunks: int = Field(..., ge=0)


# ---------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------

class QueryResponse(BaseModel):
    answer: str
    sources: List[Citation]
    token_usage: Optional[TokenUsage] = None


# ---------------------------------------------------------------------
# Health / Admin
# ---------------------------------------------------------------------

class HealthStatus(BaseModel):
    status: Literal["healthy"] = "healthy"
    timestamp: datetime
    version: str
    queue_backend: str


class AdminStats(DocumentStats):
    indexed_passages: int
    jobs: Dict[str, int] = Field(default_factory=dict)


class ChunkView(BaseModel):
    passage_id: str
    chunk_index: Optional[int] = None
    page_number: Optional[int] = None
    text: str


class DocumentChunks(BaseModel):
    document_id: str
    chunks: List[ChunkView]


class JobStatusView(BaseModel):
    job_id: str
    document_id: str
    status: str
    progress: int
    attempts: int
    max_attempts: int
    last_error: Optional[str] = None
    result: Optional[IngestionResult] = None
    available_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, job: JobRecord) -> "JobStatusView":
        return cls(
            job_id=job.id,
            document_id=job.document_id,
            status=job.status.value,
            progress=job.progress,
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            last_error=job.last_error,
            result=job.result,
            available_at=job.available_at,
            updated_at=job.updated_at,
        )
