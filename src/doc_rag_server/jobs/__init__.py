"""
Jobs Package

Ingestion job schema, queue backends and the worker that consumes them.
"""

from .models import (
    IngestionJobPayload,
    IngestionResult,
    JobHandle,
    JobRecord,
    JobStatus,
    RetryPolicy,
)
from .queue import InMemoryJobQueue, JobQueue, LeaseLostError, PostgresJobQueue
from .worker import IngestionWorker

__all__ = [
    "IngestionJobPayload",
    "IngestionResult",
    "JobHandle",
    "JobRecord",
    "JobStatus",
    "RetryPolicy",
    "InMemoryJobQueue",
    "JobQueue",
    "LeaseLostError",
    "PostgresJobQueue",
    "IngestionWorker",
]
