"""
Provider Client Tests

Embedding and completion clients against `httpx.MockTransport`.
"""

import json

import httpx
import pytest

from doc_rag_server.core.errors import EmbeddingError, GenerationError
from doc_rag_server.providers.embedder import Embedder
from doc_rag_server.providers.llm import LLMClient, build_messages


def embedding_response(request, dims=3, reverse=False):
    inputs = json.loads(request.content)["input"]
    data = [
        {"index": i, "embedding": [float(i)] * dims}
        for i in range(len(inputs))
    ]
    if reverse:
        data.reverse()
    return httpx.Response(200, json={"data": data})


# ---------------------------------------------------------------------
# Embedder
# ---------------------------------------------------------------------

@pytest.mark.asyncio
class TestEmbedder:

    async def test_one_request_per_batch(self):
        requests = []

        def handler(request):
            requests.append(request)
            return embedding_response(request)

        embedder = Embedder("key", transport=httpx.MockTransport(handler), batch_size=2048)

        vectors = await embedder.embed_batch(["a", "b", "c"])

        assert len(requests) == 1
        assert len(vectors) == 3
        body = json.loads(requests[0].content)
        assert body == {"model": "text-embedding-3-large", "input": ["a", "b", "c"]}
        assert requests[0].headers["Authorization"] == "Bearer key"
        assert str(requests[0].url) == "https://api.openai.com/v1/embeddings"

    async def test_splits_into_batches(self):
        sizes = []

        def handler(request):
            sizes.append(len(json.loads(request.content)["input"]))
            return embedding_response(request)

        embedder = Embedder("key", transport=httpx.MockTransport(handler), batch_size=2)

        vectors = await embedder.embed_batch(["a", "b", "c", "d", "e"])

        assert sizes == [2, 2, 1]
        assert len(vectors) == 5

    async def test_output_ordered_by_index(self):
        embedder = Embedder(
            "key",
            transport=httpx.MockTransport(lambda r: embedding_response(r, reverse=True)),
        )

        vectors = await embedder.embed_batch(["a", "b", "c"])

        assert [v[0] for v in vectors] == [0.0, 1.0, 2.0]

    async def test_empty_input_makes_no_request(self):
        def handler(request):
            raise AssertionError("no request expected")

        embedder = Embedder("key", transport=httpx.MockTransport(handler))

        assert await embedder.embed_batch([]) == []

    async def test_embed_single(self):
        embedder = Embedder("key", transport=httpx.MockTransport(embedding_response))

        assert await embedder.embed("question") == [0.0, 0.0, 0.0]

    async def test_http_error_wrapped(self):
        embedder = Embedder(
            "key",
            transport=httpx.MockTransport(lambda r: httpx.Response(500, json={"error": "x"})),
        )

        with pytest.raises(EmbeddingError):
            await embedder.embed_batch(["a"])

    async def test_count_mismatch(self):
        embedder = Embedder(
            "key",
            transport=httpx.MockTransport(
                lambda r: httpx.Response(200, json={"data": [{"index": 0, "embedding": [1.0]}]})
            ),
        )

        with pytest.raises(EmbeddingError):
            await embedder.embed_batch(["a", "b"])

    async def test_dimension_check(self):
        embedder = Embedder(
            "key",
            dimensions=4,
            transport=httpx.MockTransport(embedding_response),
        )

        with pytest.raises(EmbeddingError):
            await embedder.embed_batch(["a"])

    async def test_no_data(self):
        embedder = Embedder(
            "key",
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"data": []})),
        )

        with pytest.raises(EmbeddingError):
            await embedder.embed("a")


# ---------------------------------------------------------------------
# Completion client
# ---------------------------------------------------------------------

def sse_body(*fragments, done=True):
    lines = []
    for fragment in fragments:
        chunk = {"choices": [{"delta": {"content": fragment}}]}
        lines.append(f"data: {json.dumps(chunk)}\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


class TestBuildMessages:

    def test_context_is_second_system_message(self):
        messages = build_messages("sys", "user q", "[1] ctx")

        assert messages == [
            {"role": "system", "content": "sys"},
            {"role": "system", "content": "Context:\n[1] ctx"},
            {"role": "user", "content": "user q"},
        ]

    def test_without_context(self):
        assert len(build_messages("sys", "q")) == 2


@pytest.mark.asyncio
class TestLLMClient:

    async def test_complete(self):
        captured = {}

        def handler(request):
            captured["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "choices": [{"message": {"content": "Answer [1]."}}],
                    "usage": {"prompt_tokens": 12, "completion_tokens": 4, "total_tokens": 16},
                },
            )

        client = LLMClient("key", transport=httpx.MockTransport(handler))

        result = await client.complete("sys", "q", "ctx")

        assert result.text == "Answer [1]."
        assert result.token_usage.total == 16
        assert captured["body"]["temperature"] == 0.7
        assert captured["body"]["max_tokens"] == 1000
        assert captured["body"]["model"] == "gpt-4o"
        assert "stream" not in captured["body"]

    async def test_complete_without_choices(self):
        client = LLMClient(
            "key",
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"choices": []})),
        )

        with pytest.raises(GenerationError):
            await client.complete("sys", "q")

    async def test_complete_http_error(self):
        client = LLMClient(
            "key",
            transport=httpx.MockTransport(lambda r: httpx.Response(429, json={})),
        )

        with pytest.raises(GenerationError):
            await client.complete("sys", "q")

    async def test_streaming_yields_fragments_in_order(self):
        captured = {}

        def handler(request):
            captured["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                content=sse_body("Hel", "lo", "!"),
                headers={"content-type": "text/event-stream"},
            )

        client = LLMClient("key", transport=httpx.MockTransport(handler))

        fragments = [f async for f in client.complete_streaming("sys", "q", "ctx")]

        assert fragments == ["Hel", "lo", "!"]
        assert captured["body"]["stream"] is True

    async def test_streaming_stops_at_done(self):
        body = sse_body("a") + b'data: {"choices": [{"delta": {"content": "late"}}]}\n\n'
        client = LLMClient(
            "key",
            transport=httpx.MockTransport(lambda r: httpx.Response(200, content=body)),
        )

        fragments = [f async for f in client.complete_streaming("sys", "q")]

        assert fragments == ["a"]

    async def test_streaming_skips_empty_deltas(self):
        body = b'data: {"choices": [{"delta": {"role": "assistant"}}]}\n\n' + sse_body("x")
        client = LLMClient(
            "key",
            transport=httpx.MockTransport(lambda r: httpx.Response(200, content=body)),
        )

        assert [f async for f in client.complete_streaming("sys", "q")] == ["x"]

    async def test_streaming_http_error(self):
        client = LLMClient(
            "key",
            transport=httpx.MockTransport(lambda r: httpx.Response(500, content=b"")),
        )

        with pytest.raises(GenerationError):
            async for _ in client.complete_streaming("sys", "q"):
                pass

    async def test_streaming_without_done_is_error(self):
        client = LLMClient(
            "key",
            transport=httpx.MockTransport(lambda r: httpx.Response(200, content=sse_body("a", done=False))),
        )

        fragments = []
        with pytest.raises(GenerationError, match="prematurely"):
            async for fragment in client.complete_streaming("sys", "q"):
                fragments.append(fragment)
        assert fragments == ["a"]

    async def test_streaming_finish_reason_without_done(self):
        body = sse_body("a", done=False) + b'data: {"choices": [{"delta": {}, "finish_reason": "stop"}]}\n\n'
        client = LLMClient(
            "key",
            transport=httpx.MockTransport(lambda r: httpx.Response(200, content=body)),
        )

        assert [f async for f in client.complete_streaming("sys", "q")] == ["a"]

    async def test_streaming_malformed_chunk(self):
        client = LLMClient(
            "key",
            transport=httpx.MockTransport(
                lambda r: httpx.Response(200, content=b"data: {not json}\n\n")
            ),
        )

        with pytest.raises(GenerationError):
            async for _ in client.complete_streaming("sys", "q"):
                pass
