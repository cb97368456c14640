"""
Ingestion Job Queue

At-least-once queue for `index_document` jobs.

Semantics shared by every backend
---------------------------------
- `claim()` hands a job to exactly one worker, marks it active, counts the
  attempt and leases it for `lease_seconds`. A job whose lease ran out
  (worker crash) is claimable again by the next `claim()`.
- `report_progress()`, `complete()` and `fail()` only act while the caller
  still holds the job: status `active` and `locked_by == worker_id`. A
  worker whose job was re-claimed by someone else gets `False` / `None`
  back and must abandon the attempt.
- `fail()` either reschedules the job with exponential backoff or, once the
  attempt budget is spent, marks it failed. Failure is terminal.
- `reap_expired()` fails jobs whose lease ran out on their last attempt;
  those are never handed out again.

Backends
--------
- `PostgresJobQueue`: durable, shared by any number of worker processes.
- `InMemoryJobQueue`: process-local, for development and tests.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Protocol

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db.models import IngestionJobRow
from .models import (
    IngestionJobPayload,
    IngestionResult,
    JobHandle,
    JobRecord,
    JobStatus,
    RetryPolicy,
)

logger = logging.getLogger("docrag.queue")

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeaseLostError(Exception):
    """The job was re-claimed by another worker while this one held it."""

    def __init__(self, job_id: str, worker_id: str) -> None:
        super().__init__(f"Worker {worker_id} no longer holds job {job_id}")
        self.job_id = job_id
        self.worker_id = worker_id


class JobQueue(Protocol):
    retry_policy: RetryPolicy

    async def enqueue(self, payload: IngestionJobPayload) -> JobHandle: ...

    async def claim(self, worker_id: str) -> Optional[JobRecord]: ...

    async def report_progress(self, job_id: str, worker_id: str, progress: int) -> bool: ...

    async def complete(self, job_id: str, worker_id: str, result: IngestionResult) -> bool: ...

    async def fail(self, job_id: str, worker_id: str, error: str) -> Optional[JobRecord]: ...

    async def reap_expired(self) -> List[JobRecord]: ...

    async def get(self, job_id: str) -> Optional[JobRecord]: ...

    async def counts(self) -> Dict[str, int]: ...


# ---------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------

class InMemoryJobQueue:
    """
    Process-local job queue.

    Jobs are lost on restart, so this backend is only meant for development
    and tests. The clock is injectable to drive backoff without sleeping.
    """

    def __init__(
        self,
        retry_policy: Optional[RetryPolicy] = None,
        lease_seconds: float = 300.0,
        clock: Clock = utcnow,
    ) -> None:
        self.retry_policy = retry_policy or RetryPolicy()
        self.lease_seconds = lease_seconds
        self._clock = clock
        self._jobs: Dict[str, JobRecord] = {}
        self._lock = asyncio.Lock()

    async def enqueue(self, payload: IngestionJobPayload) -> JobHandle:
        now = self._clock()
        job = JobRecord(
            id=str(uuid.uuid4()),
            payload=payload,
            status=JobStatus.QUEUED,
            attempts=0,
            max_attempts=self.retry_policy.max_attempts,
            progress=0,
            available_at=now,
            created_at=now,
            updated_at=now,
        )
        async with self._lock:
            self._jobs[job.id] = job
            qsize = sum(1 for j in self._jobs.values() if j.status is JobStatus.QUEUED)

        logger.info(
            "Job %s enqueued for document %s (%d passages, queue size: %d)",
            job.id,
            payload.document_id,
            len(payload.passages),
            qsize,
        )
        return JobHandle(job_id=job.id, document_id=payload.document_id)

    async def claim(self, worker_id: str) -> Optional[JobRecord]:
        async with self._lock:
            now = self._clock()
            candidates = [
                job
                for job in self._jobs.values()
                if (job.status is JobStatus.QUEUED and job.available_at <= now)
                or (
                    job.status is JobStatus.ACTIVE
                    and job.locked_until is not None
                    and job.locked_until < now
                    and not job.exhausted
                )
            ]
            if not candidates:
                return None

            job = min(candidates, key=lambda j: j.available_at)
            job.status = JobStatus.ACTIVE
            job.attempts += 1
            job.progress = 0
            job.locked_by = worker_id
            job.locked_until = now + timedelta(seconds=self.lease_seconds)
            job.updated_at = now
            return replace(job)

    def _held(self, job_id: str, worker_id: str) -> Optional[JobRecord]:
        job = self._jobs.get(job_id)
        if job is None or job.status is not JobStatus.ACTIVE or job.locked_by != worker_id:
            logger.warning("Worker %s no longer holds job %s", worker_id, job_id)
            return None
        return job

    async def report_progress(self, job_id: str, worker_id: str, progress: int) -> bool:
        async with self._lock:
            job = self._held(job_id, worker_id)
            if job is None:
                return False
            job.progress = progress
            job.updated_at = self._clock()
            return True

    async def complete(self, job_id: str, worker_id: str, result: IngestionResult) -> bool:
        async with self._lock:
            job = self._held(job_id, worker_id)
            if job is None:
                return False
            job.status = JobStatus.COMPLETED
            job.progress = 100
            job.result = result
            job.last_error = None
            job.locked_by = None
            job.locked_until = None
            job.updated_at = self._clock()
            return True

    async def fail(self, job_id: str, worker_id: str, error: str) -> Optional[JobRecord]:
        async with self._lock:
            job = self._held(job_id, worker_id)
            if job is None:
                return None
            now = self._clock()
            job.last_error = error
            job.locked_by = None
            job.locked_until = None
            job.updated_at = now

            if job.exhausted:
                job.status = JobStatus.FAILED
            else:
                job.status = JobStatus.QUEUED
                job.available_at = now + timedelta(
                    seconds=self.retry_policy.delay_after(job.attempts)
                )
            return replace(job)

    async def reap_expired(self) -> List[JobRecord]:
        async with self._lock:
            now = self._clock()
            reaped = []
            for job in self._jobs.values():
                if (
                    job.status is JobStatus.ACTIVE
                    and job.exhausted
                    and job.locked_until is not None
                    and job.locked_until < now
                ):
                    job.status = JobStatus.FAILED
                    job.last_error = "Lease expired on final attempt"
                    job.locked_by = None
                    job.locked_until = None
                    job.updated_at = now
                    reaped.append(replace(job))
            return reaped

    async def get(self, job_id: str) -> Optional[JobRecord]:
        async with self._lock:
            job = self._jobs.get(job_id)
            return replace(job) if job else None

    async def counts(self) -> Dict[str, int]:
        async with self._lock:
            counts = {status.value: 0 for status in JobStatus}
            for job in self._jobs.values():
                counts[job.status.value] += 1
            return counts


# ---------------------------------------------------------------------
# PostgreSQL backend
# ---------------------------------------------------------------------

def _row_to_record(row: IngestionJobRow) -> JobRecord:
    return JobRecord(
        id=row.id,
        payload=IngestionJobPayload.model_validate(row.payload),
        status=JobStatus(row.status),
        attempts=row.attempts,
        max_attempts=row.max_attempts,
        progress=row.progress,
        available_at=row.available_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
        last_error=row.last_error,
        result=IngestionResult.model_validate(row.result) if row.result else None,
        locked_by=row.locked_by,
        locked_until=row.locked_until,
    )


class PostgresJobQueue:
    """
    Durable job queue stored in the `ingestion_job` table.

    Claims use `SELECT ... FOR UPDATE SKIP LOCKED`, so concurrent workers
    always receive disjoint jobs. Timestamps come from the database clock.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        retry_policy: Optional[RetryPolicy] = None,
        lease_seconds: float = 300.0,
    ) -> None:
        self._session_factory = session_factory
        self.retry_policy = retry_policy or RetryPolicy()
        self.lease_seconds = lease_seconds

    async def enqueue(self, payload: IngestionJobPayload) -> JobHandle:
        async with self._session_factory() as session:
            row = IngestionJobRow(
                document_id=payload.document_id,
                kind=payload.kind,
                payload=payload.model_dump(mode="json"),
                status=JobStatus.QUEUED.value,
                attempts=0,
                max_attempts=self.retry_policy.max_attempts,
                progress=0,
                available_at=func.now(),
            )
            session.add(row)
            await session.commit()
            job_id = row.id

        logger.info(
            "Job %s enqueued for document %s (%d passages)",
            job_id,
            payload.document_id,
            len(payload.passages),
        )
        return JobHandle(job_id=job_id, document_id=payload.document_id)

    async def claim(self, worker_id: str) -> Optional[JobRecord]:
        now = func.now()
        stmt = (
            select(IngestionJobRow)
            .where(
                or_(
                    and_(
                        IngestionJobRow.status == JobStatus.QUEUED.value,
                        IngestionJobRow.available_at <= now,
                    ),
                    and_(
                        IngestionJobRow.status == JobStatus.ACTIVE.value,
                        IngestionJobRow.locked_until < now,
                        IngestionJobRow.attempts < IngestionJobRow.max_attempts,
                    ),
                )
            )
            .order_by(IngestionJobRow.available_at)
            .limit(1)
            .with_for_update(skip_locked=True)
        )

        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            if row is None:
                return None

            row.status = JobStatus.ACTIVE.value
            row.attempts = row.attempts + 1
            row.progress = 0
            row.locked_by = worker_id
            row.locked_until = now + timedelta(seconds=self.lease_seconds)
            await session.commit()
            await session.refresh(row)
            return _row_to_record(row)

    @staticmethod
    def _held_by(job_id: str, worker_id: str):
        return and_(
            IngestionJobRow.id == job_id,
            IngestionJobRow.status == JobStatus.ACTIVE.value,
            IngestionJobRow.locked_by == worker_id,
        )

    @staticmethod
    def _check_held(rowcount: int, job_id: str, worker_id: str) -> bool:
        if rowcount:
            return True
        logger.warning("Worker %s no longer holds job %s", worker_id, job_id)
        return False

    async def report_progress(self, job_id: str, worker_id: str, progress: int) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                update(IngestionJobRow)
                .where(self._held_by(job_id, worker_id))
                .values(progress=progress)
            )
            await session.commit()
        return self._check_held(result.rowcount, job_id, worker_id)

    async def complete(self, job_id: str, worker_id: str, result: IngestionResult) -> bool:
        async with self._session_factory() as session:
            outcome = await session.execute(
                update(IngestionJobRow)
                .where(self._held_by(job_id, worker_id))
                .values(
                    status=JobStatus.COMPLETED.value,
                    progress=100,
                    result=result.model_dump(mode="json"),
                    last_error=None,
                    locked_by=None,
                    locked_until=None,
                )
            )
            await session.commit()
        return self._check_held(outcome.rowcount, job_id, worker_id)

    async def fail(self, job_id: str, worker_id: str, error: str) -> Optional[JobRecord]:
        async with self._session_factory() as session:
            row = (
                await session.execute(
                    select(IngestionJobRow)
                    .where(self._held_by(job_id, worker_id))
                    .with_for_update()
                )
            ).scalar_one_or_none()
            if row is None:
                self._check_held(0, job_id, worker_id)
                return None

            row.last_error = error
            row.locked_by = None
            row.locked_until = None
            if row.attempts >= row.max_attempts:
                row.status = JobStatus.FAILED.value
            else:
                row.status = JobStatus.QUEUED.value
                row.available_at = func.now() + timedelta(
                    seconds=self.retry_policy.delay_after(row.attempts)
                )
            await session.commit()
            await session.refresh(row)
            return _row_to_record(row)

    async def reap_expired(self) -> List[JobRecord]:
        async with self._session_factory() as session:
            rows = (
                await session.execute(
                    select(IngestionJobRow)
                    .where(
                        IngestionJobRow.status == JobStatus.ACTIVE.value,
                        IngestionJobRow.locked_until < func.now(),
                        IngestionJobRow.attempts >= IngestionJobRow.max_attempts,
                    )
                    .with_for_update(skip_locked=True)
                )
            ).scalars().all()

            for row in rows:
                row.status = JobStatus.FAILED.value
                row.last_error = "Lease expired on final attempt"
                row.locked_by = None
                row.locked_until = None
            await session.commit()
            for row in rows:
                await session.refresh(row)
            return [_row_to_record(row) for row in rows]

    async def get(self, job_id: str) -> Optional[JobRecord]:
        async with self._session_factory() as session:
            row = await session.get(IngestionJobRow, job_id)
            return _row_to_record(row) if row else None

    async def counts(self) -> Dict[str, int]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(IngestionJobRow.status, func.count()).group_by(IngestionJobRow.status)
            )
            counts = {status.value: 0 for status in JobStatus}
            for status, count in result.all():
                counts[status] = count
            return counts
