"""
Ingestion Worker

Background worker that claims ingestion jobs, embeds and indexes their
passages, and drives the owning document's status.

Processing one attempt
----------------------
1. Claim the job, report 10%.
2. Embed every passage text in one batch call.
3. Report 50%.
4. Pair passages with their embeddings.
5. Report 75%, write all entries to the index in one call.
6. Report 100% and return `(document_id, indexed_chunks)`.

Any exception aborts the attempt as a whole; the queue then reschedules the
job with backoff or, once attempts are exhausted, fails it and the document
is marked `failed`. A worker that finds its job re-claimed by another worker
(lease expired) drops the attempt and leaves job and document alone.
"""

from __future__ import annotations

import asyncio
import logging
import os
import socket
from typing import List, Optional, Protocol, Sequence

from ..db.models import DocumentStatus
from ..search.models import IndexEntry
from .models import IngestionResult, JobRecord, JobStatus
from .queue import JobQueue, LeaseLostError

logger = logging.getLogger("docrag.worker")


class SupportsBatchEmbedding(Protocol):
    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]: ...


class SupportsIndexWrites(Protocol):
    async def replace_document_entries(
        self,
        document_id: Optional[str],
        entries: Sequence[IndexEntry],
    ) -> int: ...


class SupportsStatusUpdates(Protocol):
    async def set_status(self, document_id: str, status: DocumentStatus): ...


def default_worker_id(slot: int = 0) -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{slot}"


class IngestionWorker:
    """
    Consumes jobs from a `JobQueue`.

    Several workers (in one process or many) may share a queue; the queue
    guarantees each job is claimed by one worker at a time.
    """

    def __init__(
        self,
        queue: JobQueue,
        embedder: SupportsBatchEmbedding,
        index: SupportsIndexWrites,
        documents: SupportsStatusUpdates,
        *,
        worker_id: Optional[str] = None,
        poll_interval: float = 1.0,
    ) -> None:
        self.queue = queue
        self.embedder = embedder
        self.index = index
        self.documents = documents
        self.worker_id = worker_id or default_worker_id()
        self.poll_interval = poll_interval
        self._stop = asyncio.Event()

    # ------------------------------------------------------------------
    # Single attempt
    # ------------------------------------------------------------------

    async def process(self, job: JobRecord) -> IngestionResult:
        """
        Run one attempt of a job. Raises on any failure.
        """
        document_id = job.document_id
        passages = job.payload.passages

        await self._progress(job, 10)

        embeddings = await self.embedder.embed_batch([p.text for p in passages])

        await self._progress(job, 50)

        entries = IndexEntry.pair(passages, embeddings)

        await self._progress(job, 75)

        # Also drops passages left over from an earlier, longer ingestion.
        await self.index.replace_document_entries(document_id, entries)

        await self._progress(job, 100)

        return IngestionResult(document_id=document_id, indexed_chunks=len(entries))

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def run_once(self) -> Optional[JobRecord]:
        """
        Claim and process at most one job.

        Returns the job's state after this attempt, or None when no job was
        ready.
        """
        for expired in await self.queue.reap_expired():
            logger.error(
                "Job %s for document %s failed: %s",
                expired.id,
                expired.document_id,
                expired.last_error,
            )
            await self._set_document_status(expired.document_id, DocumentStatus.FAILED)

        job = await self.queue.claim(self.worker_id)
        if job is None:
            return None

        logger.info(
            "Processing document %s with %d chunks (job %s, attempt %d/%d)",
            job.document_id,
            len(job.payload.passages),
            job.id,
            job.attempts,
            job.max_attempts,
        )

        try:
            result = await self.process(job)
        except LeaseLostError:
            return await self._abandon(job)
        except Exception as exc:
            return await self._handle_failure(job, exc)

        if not await self.queue.complete(job.id, self.worker_id, result):
            return await self._abandon(job)
        await self._set_document_status(job.document_id, DocumentStatus.INDEXED)
        logger.info(
            "Job %s completed: document %s, %d chunks indexed",
            job.id,
            result.document_id,
            result.indexed_chunks,
        )
        return await self.queue.get(job.id)

    async def run_forever(self) -> None:
        """
        Process jobs until `stop()` is called or the task is cancelled.
        """
        logger.info("Ingestion worker %s started.", self.worker_id)
        self._stop.clear()

        while not self._stop.is_set():
            try:
                job = await self.run_once()
            except asyncio.CancelledError:
                logger.info("Ingestion worker %s cancelled.", self.worker_id)
                raise
            except Exception:
                # Queue or store unavailable; keep the loop alive and retry later.
                logger.exception("Unexpected error in ingestion worker %s", self.worker_id)
                job = None

            if job is None:
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    pass

        logger.info("Ingestion worker %s stopped.", self.worker_id)

    async def drain(self) -> None:
        """
        Process jobs until none are queued or active.

        A job waiting out its retry backoff still counts as queued, so an
        idle poll sleeps and tries again instead of returning.
        """
        while True:
            counts = await self.queue.counts()
            if counts[JobStatus.QUEUED.value] + counts[JobStatus.ACTIVE.value] == 0:
                return
            if await self.run_once() is None:
                await asyncio.sleep(self.poll_interval)

    def stop(self) -> None:
        self._stop.set()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _progress(self, job: JobRecord, progress: int) -> None:
        if not await self.queue.report_progress(job.id, self.worker_id, progress):
            raise LeaseLostError(job.id, self.worker_id)

    async def _abandon(self, job: JobRecord) -> Optional[JobRecord]:
        logger.warning(
            "Job %s was re-claimed by another worker; attempt %d by %s dropped",
            job.id,
            job.attempts,
            self.worker_id,
        )
        return await self.queue.get(job.id)

    async def _handle_failure(self, job: JobRecord, exc: Exception) -> Optional[JobRecord]:
        error = f"{type(exc).__name__}: {exc}"
        failed = await self.queue.fail(job.id, self.worker_id, error)
        if failed is None:
            return await self._abandon(job)

        if failed.status is JobStatus.FAILED:
            logger.error(
                "Job %s failed after %d attempts; document %s marked failed",
                job.id,
                failed.attempts,
                job.document_id,
                exc_info=exc,
            )
            await self._set_document_status(job.document_id, DocumentStatus.FAILED)
        else:
            logger.warning(
                "Job %s attempt %d/%d failed (%s); retrying at %s",
                job.id,
                failed.attempts,
                failed.max_attempts,
                error,
                failed.available_at.isoformat(),
            )
        return failed

    async def _set_document_status(self, document_id: str, status: DocumentStatus) -> None:
        updated = await self.documents.set_status(document_id, status)
        if updated is None:
            logger.warning(
                "Document %s no longer exists; status %s not recorded",
                document_id,
                status.value,
            )
