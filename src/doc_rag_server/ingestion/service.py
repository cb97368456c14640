"""
Ingestion Service

Entry point of the write path: chunk a document, record it, and hand its
passages to the job queue for embedding and indexing.

The queue is optional. When no queue backend is configured the document is
recorded and chunked but stays `uploaded`; that is degraded mode, not an
error.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ..core.errors import ChunkingError, DocRagError, DocumentNotFoundError, InvalidInputError
from ..db.document_store import DocumentRecord, DocumentStore
from ..db.models import DocumentStatus
from ..jobs.models import IngestionJobPayload, JobHandle
from ..jobs.queue import JobQueue
from ..search.retriever import Retriever
from .chunker import chunk_document, split_pages
from .models import ChunkingOptions, Passage

logger = logging.getLogger("docrag.ingestion")


class IngestionService:
    def __init__(
        self,
        documents: DocumentStore,
        retriever: Retriever,
        queue: Optional[JobQueue],
        chunking_options: Optional[ChunkingOptions] = None,
    ) -> None:
        self.documents = documents
        self.retriever = retriever
        self.queue = queue
        self.chunking_options = chunking_options or ChunkingOptions()

    @property
    def queue_enabled(self) -> bool:
        return self.queue is not None

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def ingest(
        self,
        raw_text: str,
        document_id: str,
        options: Optional[ChunkingOptions] = None,
    ) -> List[Passage]:
        """
        Chunk a document's text into passages.

        Raises
        ------
        InvalidInputError
            If the text is empty or whitespace-only.
        ChunkingError
            If chunking fails; no partial passage set is returned.
        """
        if not raw_text or not raw_text.strip():
            raise InvalidInputError("Document text is required")

        try:
            passages = chunk_document(raw_text, document_id, options or self.chunking_options)
        except DocRagError:
            raise
        except Exception as exc:
            logger.exception("Chunking failed for document %s", document_id)
            raise ChunkingError(f"Failed to chunk document {document_id}") from exc

        logger.info("Chunked document %s into %d passages", document_id, len(passages))
        return passages

    async def enqueue_ingestion(
        self,
        document_id: str,
        passages: List[Passage],
    ) -> Optional[JobHandle]:
        """
        Queue passages for embedding and indexing.

        Returns None when the queue is disabled.
        """
        if self.queue is None:
            logger.warning(
                "Job queue disabled; document %s will not be indexed",
                document_id,
            )
            return None

        payload = IngestionJobPayload(document_id=document_id, passages=passages)
        return await self.queue.enqueue(payload)

    # ------------------------------------------------------------------
    # Document lifecycle
    # ------------------------------------------------------------------

    async def upload_document(self, filename: str, text: str) -> DocumentRecord:
        """
        Record a document, chunk it and queue it for indexing.

        The document is marked `processing` before its job is queued, so a
        worker that finishes first always has the last word on status. The
        returned record is `processing` when a job was queued and
        `uploaded` when the queue is disabled.
        """
        if not text or not text.strip():
            raise InvalidInputError("Document text is required")

        page_count = sum(
            1
            for page in split_pages(text, self.chunking_options.split_on_page_breaks)
            if page.strip()
        )
        document = await self.documents.create(
            filename=filename,
            size=len(text.encode("utf-8")),
            page_count=page_count,
        )

        try:
            passages = self.ingest(text, document.id)
            updated = await self.documents.update(
                document.id,
                chunk_count=len(passages),
                status=DocumentStatus.PROCESSING if self.queue_enabled else DocumentStatus.UPLOADED,
            )
            if updated is None:
                raise DocumentNotFoundError(document.id)
            handle = await self.enqueue_ingestion(document.id, passages)
        except DocumentNotFoundError:
            raise
        except Exception:
            await self.documents.set_status(document.id, DocumentStatus.FAILED)
            raise

        if handle is not None:
            # job_id only: status may already be past `processing`.
            await self.documents.update(document.id, job_id=handle.job_id)
            updated = updated.model_copy(update={"job_id": handle.job_id})

        logger.info(
            "Document %s (%s) uploaded: %d pages, %d chunks, status %s",
            updated.id,
            filename,
            page_count,
            len(passages),
            updated.status.value,
        )
        return updated

    async def delete_document(self, document_id: str) -> int:
        """
        Remove a document record and all of its indexed passages.

        Returns the number of passages removed from the index.
        """
        document = await self.documents.get(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)

        deleted = await self.retriever.delete_by_document(document_id)
        await self.documents.delete(document_id)

        logger.info("Document %s deleted (%d passages)", document_id, deleted)
        return deleted
