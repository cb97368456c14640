"""
HTTP Route Tests

The application is created with prebuilt services: real ingestion and query
services over mocked stores, index and providers.
"""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from doc_rag_server.config import Settings
from doc_rag_server.core.errors import IndexOperationError
from doc_rag_server.db.document_store import DocumentRecord, DocumentStats
from doc_rag_server.db.models import DocumentStatus
from doc_rag_server.ingestion.service import IngestionService
from doc_rag_server.main import create_app
from doc_rag_server.providers.llm import CompletionResult, TokenUsage
from doc_rag_server.rag.prompts import NO_RESULTS_ANSWER
from doc_rag_server.rag.service import QueryService
from doc_rag_server.rag.synthesizer import AnswerSynthesizer
from doc_rag_server.search.models import SearchResult
from doc_rag_server.services import Services


NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def record(**overrides):
    values = dict(
        id="doc-1",
        filename="notes.txt",
        size=10,
        page_count=1,
        chunk_count=0,
        status=DocumentStatus.UPLOADED,
        job_id=None,
        created_at=NOW,
        updated_at=NOW,
    )
    values.update(overrides)
    return DocumentRecord(**values)


def search_hit(n, page=None):
    return SearchResult(
        passage_id=f"doc-1-chunk-{n}",
        document_id="doc-1",
        text=f"Passage {n} " + "x" * 300,
        score=0.9 - n * 0.1,
        page_number=page,
        chunk_index=n,
    )


class FakeLLM:
    def __init__(self):
        self.complete = AsyncMock(
            return_value=CompletionResult(
                text="The answer [1].",
                token_usage=TokenUsage(prompt=20, completion=5, total=25),
            )
        )
        self.fragments = ["The ", "answer ", "[1]."]
        self.error = None
        self.stream_calls = 0

    async def complete_streaming(self, system_prompt, user_prompt, context=None):
        self.stream_calls += 1
        for fragment in self.fragments:
            yield fragment
        if self.error:
            raise self.error


@pytest.fixture
def documents():
    store = AsyncMock()
    store.create.return_value = record()

    async def update(document_id, **changes):
        return record(id=document_id, **changes)

    store.update.side_effect = update
    store.get.return_value = record(status=DocumentStatus.INDEXED, chunk_count=3)
    store.list.return_value = [record(), record(id="doc-2", filename="b.txt")]
    store.get_stats.return_value = DocumentStats(
        total_documents=2,
        total_chunks=6,
        indexed_documents=1,
        failed_documents=0,
        avg_chunks_per_doc=3,
        last_upload=NOW,
        storage_used=20,
    )
    return store


@pytest.fixture
def index():
    mock = AsyncMock()
    mock.count.return_value = 6
    mock.list_passages.return_value = [search_hit(0, page=1), search_hit(1, page=2)]
    return mock


@pytest.fixture
def retriever():
    mock = AsyncMock()
    mock.search.return_value = [search_hit(0, page=1), search_hit(1)]
    mock.delete_by_document.return_value = 3
    return mock


@pytest.fixture
def embedder():
    mock = AsyncMock()
    mock.embed.return_value = [0.1, 0.2, 0.3]
    return mock


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def services(documents, index, retriever, embedder, llm, queue):
    return Services(
        settings=Settings(queue_backend="memory"),
        documents=documents,
        index=index,
        retriever=retriever,
        embedder=embedder,
        llm=llm,
        queue=queue,
        ingestion=IngestionService(documents, retriever, queue),
        query=QueryService(embedder, retriever, AnswerSynthesizer(llm)),
    )


@pytest.fixture
def client(services):
    with TestClient(create_app(services)) as test_client:
        yield test_client


def sse_events(response):
    return [
        json.loads(line[len("data: "):])
        for line in response.text.split("\n")
        if line.startswith("data: ")
    ]


# ---------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------

def test_health(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["status"] == "healthy"
    assert body["data"]["queue_backend"] == "memory"


def test_health_reports_disabled_queue(services):
    services.queue = None
    with TestClient(create_app(services)) as client:
        assert client.get("/health").json()["data"]["queue_backend"] == "disabled"


# ---------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------

class TestDocumentRoutes:

    def test_upload(self, client, queue):
        resp = client.post(
            "/documents",
            json={"filename": "notes.txt", "text": "Page one.\fPage two."},
        )

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["document_id"] == "doc-1"
        assert data["status"] == "processing"
        assert data["chunk_count"] == 2
        assert data["job_id"]

    def test_upload_degraded_mode(self, services):
        services.queue = None
        services.ingestion = IngestionService(services.documents, services.retriever, None)
        with TestClient(create_app(services)) as client:
            resp = client.post("/documents", json={"filename": "a.txt", "text": "Some text."})

        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "uploaded"
        assert resp.json()["data"]["job_id"] is None

    def test_upload_empty_text(self, client, documents):
        resp = client.post("/documents", json={"filename": "a.txt", "text": "   "})

        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "Document text is required"}
        documents.create.assert_not_awaited()

    def test_upload_missing_field(self, client):
        resp = client.post("/documents", json={"filename": "a.txt"})

        assert resp.status_code == 400
        assert resp.json()["success"] is False
        assert "text" in resp.json()["error"]

    def test_list(self, client):
        data = client.get("/documents").json()["data"]

        assert data["total"] == 2
        assert [d["id"] for d in data["documents"]] == ["doc-1", "doc-2"]

    def test_status(self, client):
        resp = client.get("/documents/doc-1/status")

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["status"] == "indexed"
        assert data["chunk_count"] == 3

    def test_status_unknown(self, client, documents):
        documents.get.return_value = None

        resp = client.get("/documents/nope/status")

        assert resp.status_code == 404
        assert resp.json() == {"success": False, "error": "Document not found"}

    def test_delete(self, client, retriever, documents):
        resp = client.delete("/documents/doc-1")

        assert resp.status_code == 200
        assert resp.json()["data"] == {"document_id": "doc-1", "deleted_chunks": 3}
        retriever.delete_by_document.assert_awaited_once_with("doc-1")
        documents.delete.assert_awaited_once_with("doc-1")

    def test_delete_index_failure(self, client, retriever):
        retriever.delete_by_document.side_effect = IndexOperationError("boom")

        resp = client.delete("/documents/doc-1")

        assert resp.status_code == 502
        assert resp.json() == {"success": False, "error": "Search operation failed"}


# ---------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------

class TestQueryRoutes:

    def test_query(self, client, llm):
        resp = client.post("/query", json={"query": "What?", "top_k": 2})

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["answer"] == "The answer [1]."
        assert data["token_usage"] == {"prompt": 20, "completion": 5, "total": 25}
        assert len(data["sources"]) == 2
        assert data["sources"][0]["page_number"] == 1
        assert data["sources"][0]["preview"].endswith("...")
        assert len(data["sources"][0]["preview"]) == 203

    def test_query_without_results(self, client, retriever, llm):
        retriever.search.return_value = []

        data = client.post("/query", json={"query": "What?"}).json()["data"]

        assert data["answer"] == NO_RESULTS_ANSWER
        assert data["sources"] == []
        llm.complete.assert_not_awaited()

    def test_empty_query_rejected_before_provider(self, client, embedder):
        resp = client.post("/query", json={"query": "  "})

        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "Query is required"}
        embedder.embed.assert_not_awaited()

    def test_invalid_top_k(self, client, embedder):
        resp = client.post("/query", json={"query": "What?", "top_k": 0})

        assert resp.status_code == 400
        embedder.embed.assert_not_awaited()

    def test_provider_failure_is_generic(self, client, llm):
        from doc_rag_server.core.errors import GenerationError

        llm.complete.side_effect = GenerationError("upstream said 429 with key sk-123")

        resp = client.post("/query", json={"query": "What?"})

        assert resp.status_code == 502
        assert resp.json() == {"success": False, "error": "Generation failed"}

    def test_stream(self, client):
        resp = client.post("/query/stream", json={"query": "What?"})

        assert resp.status_code == 200
        assert "text/event-stream" in resp.headers["content-type"]
        events = sse_events(resp)
        assert [e["type"] for e in events] == ["sources", "answer", "answer", "answer", "done"]
        assert len(events[0]["sources"]) == 2
        assert "".join(e["content"] for e in events[1:-1]) == "The answer [1]."

    def test_stream_without_results(self, client, retriever, llm):
        retriever.search.return_value = []

        events = sse_events(client.post("/query/stream", json={"query": "What?"}))

        assert [e["type"] for e in events] == ["sources", "answer", "done"]
        assert events[1]["content"] == NO_RESULTS_ANSWER
        assert llm.stream_calls == 0

    def test_stream_provider_failure(self, client, llm):
        from doc_rag_server.core.errors import GenerationError

        llm.error = GenerationError("connection reset")

        events = sse_events(client.post("/query/stream", json={"query": "What?"}))

        assert events[-1] == {"type": "error", "error": "Generation failed"}
        assert [e["type"] for e in events].count("error") == 1

    def test_stream_empty_query(self, client, embedder):
        resp = client.post("/query/stream", json={"query": ""})

        assert resp.status_code == 400
        embedder.embed.assert_not_awaited()


# ---------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------

class TestAdminRoutes:

    def test_stats(self, client, queue):
        data = client.get("/admin/stats").json()["data"]

        assert data["total_documents"] == 2
        assert data["indexed_passages"] == 6
        assert data["jobs"] == {"queued": 0, "active": 0, "completed": 0, "failed": 0}

    def test_chunks(self, client):
        data = client.get("/admin/documents/doc-1/chunks").json()["data"]

        assert data["document_id"] == "doc-1"
        assert [c["chunk_index"] for c in data["chunks"]] == [0, 1]
        assert [c["page_number"] for c in data["chunks"]] == [1, 2]

    def test_chunks_unknown_document(self, client, documents):
        documents.get.return_value = None

        assert client.get("/admin/documents/nope/chunks").status_code == 404

    def test_job_status(self, client):
        job_id = client.post(
            "/documents",
            json={"filename": "notes.txt", "text": "Some text."},
        ).json()["data"]["job_id"]

        resp = client.get(f"/admin/jobs/{job_id}")

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["status"] == "queued"
        assert data["progress"] == 0
        assert data["max_attempts"] == 3

    def test_job_unknown(self, client):
        resp = client.get("/admin/jobs/missing")

        assert resp.status_code == 404
        assert resp.json() == {"success": False, "error": "Job not found"}
