"""
SQLAlchemy Models

Defines the database schema for:
- Document records (metadata and ingestion status)
- The hybrid search index (pgvector embeddings + full-text tsvector)
- The durable ingestion job queue
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Column,
    Computed,
    String,
    Integer,
    Text,
    DateTime,
    Index,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, TSVECTOR
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from pgvector.sqlalchemy import Vector

# text-embedding-3-large output size; must match settings.embedding_dimensions
EMBEDDING_DIMENSIONS = 3072


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class DocumentStatus(str, enum.Enum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    INDEXED = "indexed"
    FAILED = "failed"


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------
# Document Model
# ---------------------------------------------------------------------

class Document(Base):
    """
    Metadata record for an uploaded document.

    `status` is driven by the ingestion job lifecycle:
    processing on enqueue, indexed on completion, failed on exhaustion.
    """
    __tablename__ = "document"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    filename: Mapped[str] = mapped_column(Text, nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    page_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    chunk_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=DocumentStatus.UPLOADED.value,
    )
    job_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        Index("idx_document_status", "status"),
        Index("idx_document_created", "created_at"),
    )


# ---------------------------------------------------------------------
# Search Index Model
# ---------------------------------------------------------------------

class PassageEntry(Base):
    """
    One indexed passage: text, position and its embedding.

    Keyed by passage id, filterable by document and page, full-text
    searchable through `text_search`, vector searchable on `embedding`.
    """
    __tablename__ = "passage_index"

    id: Mapped[str] = mapped_column(String(160), primary_key=True)
    document_id: Mapped[str] = mapped_column(String(64), nullable=False)
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    total_chunks: Mapped[int] = mapped_column(Integer, nullable=False)
    page_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)

    text_search = Column(
        TSVECTOR,
        Computed("to_tsvector('english', text)", persisted=True),
    )

    # No ANN index: pgvector's HNSW/IVFFlat cap out below 3072 dimensions,
    # so similarity queries use an exact scan.
    embedding = Column(Vector(EMBEDDING_DIMENSIONS), nullable=False)

    __table_args__ = (
        Index("idx_passage_document", "document_id", "chunk_index"),
        Index("idx_passage_page", "page_number"),
        Index("idx_passage_text_search", "text_search", postgresql_using="gin"),
    )


# ---------------------------------------------------------------------
# Ingestion Job Model
# ---------------------------------------------------------------------

class IngestionJobRow(Base):
    """
    Durable queue entry for one ingestion job.

    Workers claim rows with `FOR UPDATE SKIP LOCKED`; `locked_until` is the
    lease after which an active row becomes claimable again.
    """
    __tablename__ = "ingestion_job"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    document_id: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONB, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    available_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    locked_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    locked_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    result: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        Index("idx_job_claim", "status", "available_at"),
        Index("idx_job_document", "document_id"),
    )
