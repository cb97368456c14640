"""
Document Store

PostgreSQL-backed store for document metadata records.

Every public method opens its own short-lived session from the injected
session factory, so a single `DocumentStore` can be shared by request
handlers and worker loops.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import Document, DocumentStatus


class DocumentRecord(BaseModel):
    """Detached snapshot of a `document` row."""
    id: str
    filename: str
    size: int
    page_count: int
    chunk_count: int
    status: DocumentStatus
    job_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DocumentStats(BaseModel):
    total_documents: int
    total_chunks: int
    indexed_documents: int
    failed_documents: int
    avg_chunks_per_doc: int
    last_upload: Optional[datetime] = None
    storage_used: int


_UPDATABLE_FIELDS = {"filename", "size", "page_count", "chunk_count", "status", "job_id"}


class DocumentStore:
    """
    CRUD access to document records.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """
        Parameters
        ----------
        session_factory : async_sessionmaker[AsyncSession]
            Factory producing sessions bound to the application engine.
        """
        self._session_factory = session_factory

    async def create(
        self,
        filename: str,
        size: int = 0,
        page_count: int = 0,
        status: DocumentStatus = DocumentStatus.UPLOADED,
    ) -> DocumentRecord:
        async with self._session_factory() as session:
            document = Document(
                filename=filename,
                size=size,
                page_count=page_count,
                chunk_count=0,
                status=status.value,
            )
            session.add(document)
            await session.commit()
            await session.refresh(document)
            return DocumentRecord.model_validate(document)

    async def get(self, document_id: str) -> Optional[DocumentRecord]:
        async with self._session_factory() as session:
            document = await session.get(Document, document_id)
            return DocumentRecord.model_validate(document) if document else None

    async def list(self) -> List[DocumentRecord]:
        """Return all documents, newest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Document).order_by(Document.created_at.desc())
            )
            return [DocumentRecord.model_validate(d) for d in result.scalars().all()]

    async def update(self, document_id: str, **changes: Any) -> Optional[DocumentRecord]:
        """
        Apply field changes to a document.

        Returns the updated record, or None if the document does not exist.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update document fields: {sorted(unknown)}")

        if isinstance(changes.get("status"), DocumentStatus):
            changes["status"] = changes["status"].value

        async with self._session_factory() as session:
            document = await session.get(Document, document_id)
            if document is None:
                return None
            for field, value in changes.items():
                setattr(document, field, value)
            await session.commit()
            await session.refresh(document)
            return DocumentRecord.model_validate(document)

    async def set_status(
        self,
        document_id: str,
        status: DocumentStatus,
    ) -> Optional[DocumentRecord]:
        return await self.update(document_id, status=status)

    async def delete(self, document_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(Document).where(Document.id == document_id)
            )
            await session.commit()
            return result.rowcount > 0

    async def get_stats(self) -> DocumentStats:
        """
        Aggregate counts over all documents.
        """
        async with self._session_factory() as session:
            row = (
                await session.execute(
                    select(
                        func.count(Document.id).label("total_documents"),
                        func.coalesce(func.sum(Document.chunk_count), 0).label("total_chunks"),
                        func.count(Document.id)
                        .filter(Document.status == DocumentStatus.INDEXED.value)
                        .label("indexed_documents"),
                        func.count(Document.id)
                        .filter(Document.status == DocumentStatus.FAILED.value)
                        .label("failed_documents"),
                        func.max(Document.created_at).label("last_upload"),
                        func.coalesce(func.sum(Document.size), 0).label("storage_used"),
                    )
                )
            ).one()

        total_documents = row.total_documents or 0
        total_chunks = int(row.total_chunks or 0)
        avg = round(total_chunks / total_documents) if total_documents else 0

        return DocumentStats(
            total_documents=total_documents,
            total_chunks=total_chunks,
            indexed_documents=row.indexed_documents or 0,
            failed_documents=row.failed_documents or 0,
            avg_chunks_per_doc=avg,
            last_upload=row.last_upload,
            storage_used=int(row.storage_used or 0),
        )
