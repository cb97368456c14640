"""
Embedding Client

This module implements the embedding side of the provider contract using the
OpenAI embeddings API (or any compatible provider). It is responsible for:

- Sending all passage texts of a document in as few requests as possible
- Network and transport error isolation
- Strict response validation (count, order, dimensionality)

The class holds no per-request state and is safe to share between the API
process and worker loops.
"""

from __future__ import annotations

from typing import List, Sequence, Optional
import logging
import httpx

from ..core.errors import EmbeddingError

logger = logging.getLogger("docrag.embedder")


class Embedder:
    """
    Asynchronous embedding generator.

    This class performs no caching; re-ingesting a document recomputes every
    embedding.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-large",
        base_url: str = "https://api.openai.com/v1",
        dimensions: Optional[int] = None,
        batch_size: int = 2048,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize an Embedder.

        Parameters
        ----------
        api_key : str
            Provider API key.

        model : str
            Embedding model name.

        base_url : str
            Base URL of the OpenAI-compatible API (without `/embeddings`).

        dimensions : Optional[int]
            Expected vector size. When set, every returned vector is checked.

        batch_size : int
            Maximum number of inputs per request. The default is the
            provider's per-request limit, so one document is one request.

        timeout : float
            HTTP timeout for each request.

        transport : Optional[httpx.AsyncBaseTransport]
            Optional transport override (used by tests).
        """
        self.api_key = api_key
        self.model = model
        self.url = base_url.rstrip("/") + "/embeddings"
        self.dimensions = dimensions
        self.batch_size = batch_size
        self.timeout = timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> List[float]:
        """
        Embed a single text (used for queries).

        Raises
        ------
        EmbeddingError
            If the request fails or no vector is returned.
        """
        vectors = await self.embed_batch([text])
        if not vectors:
            raise EmbeddingError("No embedding returned")
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Generate embeddings for a sequence of input texts.

        Parameters
        ----------
        texts : Sequence[str]
            Input strings.

        Returns
        -------
        List[List[float]]
            One vector per input, in input order.

        Raises
        ------
        EmbeddingError
            If any request fails or the response is malformed.
        """
        if not texts:
            return []

        all_embeddings: List[List[float]] = []
        headers = {"Authorization": f"Bearer {self.api_key}"}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for start in range(0, len(texts), self.batch_size):
                batch = list(texts[start : start + self.batch_size])
                payload = {
                    "model": self.model,
                    "input": batch,
                }

                try:
                    response = await client.post(self.url, json=payload, headers=headers)
                    response.raise_for_status()
                    data = response.json()
                except (httpx.HTTPError, ValueError) as exc:
                    logger.error(
                        "Embedding request failed (%s): batch size=%d, error=%s",
                        type(exc).__name__,
                        len(batch),
                        str(exc),
                    )
                    raise EmbeddingError(
                        f"Embedding generation failed: {type(exc).__name__}"
                    ) from exc

                all_embeddings.extend(self._extract_embeddings(data, expected=len(batch)))

        return all_embeddings

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _extract_embeddings(self, data: dict, expected: int) -> List[List[float]]:
        """
        Parse and validate embedding output format.

        OpenAI returns:
            { "data": [ {"index": 0, "embedding": [...]}, ... ] }

        Records are re-ordered by `index` so the output lines up with the
        input batch.
        """
        records = data.get("data") if isinstance(data, dict) else None
        if not isinstance(records, list) or not records:
            raise EmbeddingError("No embeddings returned")

        if len(records) != expected:
            raise EmbeddingError(
                f"Embedding count mismatch: expected {expected}, got {len(records)}"
            )

        ordered = sorted(
            enumerate(records),
            key=lambda item: item[1].get("index", item[0]) if isinstance(item[1], dict) else item[0],
        )

        embeddings: List[List[float]] = []
        for position, (_, record) in enumerate(ordered):
            if not isinstance(record, dict) or "embedding" not in record:
                raise EmbeddingError(f"Malformed embedding record at index {position}")

            emb = record["embedding"]
            if not isinstance(emb, list) or not emb or not all(
                isinstance(x, (float, int)) for x in emb
            ):
                raise EmbeddingError(
                    f"Invalid embedding vector at index {position}: must be float list."
                )

            if self.dimensions is not None and len(emb) != self.dimensions:
                raise EmbeddingError(
                    f"Embedding at index {position} has {len(emb)} dimensions, "
                    f"expected {self.dimensions}"
                )

            embeddings.append([float(x) for x in emb])

        return embeddings
