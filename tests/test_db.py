"""
Database Model and Store Tests

Model defaults and record conversion; no database connection is needed.
"""

from datetime import datetime, timezone

import pytest

from doc_rag_server.db.document_store import DocumentRecord, DocumentStore
from doc_rag_server.db.models import (
    EMBEDDING_DIMENSIONS,
    Document,
    DocumentStatus,
    IngestionJobRow,
    PassageEntry,
)
from doc_rag_server.config import Settings


class TestDocumentModel:

    def test_document_creation(self):
        document = Document(filename="notes.txt", size=10, page_count=1, chunk_count=0,
                            status=DocumentStatus.UPLOADED.value)

        assert document.filename == "notes.txt"
        assert document.status == "uploaded"
        # job_id is only set once a job is queued
        assert document.job_id is None

    def test_record_from_row(self):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        document = Document(
            id="doc-1",
            filename="notes.txt",
            size=10,
            page_count=2,
            chunk_count=4,
            status="indexed",
            job_id="job-1",
            created_at=now,
            updated_at=now,
        )

        record = DocumentRecord.model_validate(document)

        assert record.status is DocumentStatus.INDEXED
        assert record.chunk_count == 4
        assert record.job_id == "job-1"


class TestIndexModel:

    def test_embedding_dimensions_match_settings_default(self):
        assert Settings().embedding_dimensions == EMBEDDING_DIMENSIONS

    def test_passage_entry_columns(self):
        columns = PassageEntry.__table__.columns

        assert columns["embedding"].type.dim == EMBEDDING_DIMENSIONS
        assert columns["page_number"].nullable
        assert "text_search" in columns

    def test_job_row_table(self):
        assert IngestionJobRow.__tablename__ == "ingestion_job"
        assert {"locked_until", "available_at", "attempts"} <= set(IngestionJobRow.__table__.columns.keys())


@pytest.mark.asyncio
class TestDocumentStore:

    async def test_update_rejects_unknown_fields(self):
        store = DocumentStore(session_factory=None)

        with pytest.raises(ValueError):
            await store.update("doc-1", created_at=None)
