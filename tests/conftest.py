from datetime import datetime, timedelta, timezone

import pytest

from doc_rag_server.ingestion.chunker import chunk_document
from doc_rag_server.jobs.models import IngestionJobPayload, RetryPolicy
from doc_rag_server.jobs.queue import InMemoryJobQueue


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def queue(clock):
    return InMemoryJobQueue(RetryPolicy(), lease_seconds=300, clock=clock)


@pytest.fixture
def passages():
    text = "First sentence here. Second sentence there. Third one.\fAnother page."
    return chunk_document(text, "doc-1")


@pytest.fixture
def payload(passages):
    return IngestionJobPayload(document_id="doc-1", passages=passages)
