"""
Job Data Models

Closed, versioned schema for ingestion jobs plus the bookkeeping records
the queue keeps for each of them.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..ingestion.models import Passage


class JobStatus(str, enum.Enum):
    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class IngestionJobPayload(BaseModel):
    """
    Payload of an `index_document` job.

    The passages are the complete, ordered output of one chunking pass; the
    job is retried as a whole, never partially.
    """

    version: Literal[1] = 1
    kind: Literal["index_document"] = "index_document"
    document_id: str = Field(..., min_length=1)
    passages: List[Passage] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _check_snapshot(self) -> "IngestionJobPayload":
        for expected_index, passage in enumerate(self.passages):
            if passage.document_id != self.document_id:
                raise ValueError(
                    f"Passage {passage.id} belongs to {passage.document_id}, "
                    f"not {self.document_id}"
                )
            if passage.chunk_index != expected_index:
                raise ValueError("Passages must be ordered by chunk_index from 0")
        return self


class IngestionResult(BaseModel):
    document_id: str
    indexed_chunks: int = Field(..., ge=0)


@dataclass(frozen=True)
class JobHandle:
    """Reference returned to the caller after a job has been enqueued."""
    job_id: str
    document_id: str


@dataclass
class RetryPolicy:
    """
    Attempt budget and exponential backoff for a job.

    The delay before attempt `n + 1` is `backoff_seconds * multiplier ** (n - 1)`.
    """
    max_attempts: int = 3
    backoff_seconds: float = 5.0
    multiplier: float = 2.0

    def delay_after(self, attempts: int) -> float:
        return self.backoff_seconds * self.multiplier ** max(attempts - 1, 0)


@dataclass
class JobRecord:
    """Queue-side state of a single job."""
    id: str
    payload: IngestionJobPayload
    status: JobStatus
    attempts: int
    max_attempts: int
    progress: int
    available_at: datetime
    created_at: datetime
    updated_at: datetime
    last_error: Optional[str] = None
    result: Optional[IngestionResult] = None
    locked_by: Optional[str] = None
    locked_until: Optional[datetime] = None

    @property
    def document_id(self) -> str:
        return self.payload.document_id

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts
