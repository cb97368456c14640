"""
Query Service

Read path: embed the question, retrieve passages, synthesize the answer.
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator, List, Optional, Protocol

from ..core.errors import DocRagError, GenerationError, InvalidInputError
from ..search.models import SearchFilter, SearchOptions, SearchResult
from ..search.retriever import Retriever
from .models import Answer, StreamEvent
from .synthesizer import AnswerSynthesizer

logger = logging.getLogger("docrag.query")


class SupportsEmbedding(Protocol):
    async def embed(self, text: str) -> List[float]: ...


class QueryService:
    def __init__(
        self,
        embedder: SupportsEmbedding,
        retriever: Retriever,
        synthesizer: AnswerSynthesizer,
        default_top_k: int = 5,
        hybrid_search: bool = True,
    ) -> None:
        self.embedder = embedder
        self.retriever = retriever
        self.synthesizer = synthesizer
        self.default_top_k = default_top_k
        self.hybrid_search = hybrid_search

    async def retrieve(
        self,
        question: str,
        top_k: Optional[int] = None,
        document_id: Optional[str] = None,
    ) -> List[SearchResult]:
        """
        Validate the question and return the ranked passages for it.

        Raises
        ------
        InvalidInputError
            If the question is empty; no provider is called.
        GenerationError
            If the question cannot be embedded.
        IndexOperationError
            If the search fails.
        """
        if not question or not question.strip():
            raise InvalidInputError("Query is required")

        options = SearchOptions(
            top=top_k or self.default_top_k,
            filter=SearchFilter(document_id=document_id),
            hybrid_search=self.hybrid_search,
        )

        try:
            embedding = await self.embedder.embed(question)
        except DocRagError:
            raise
        except Exception as exc:
            logger.error("Query embedding failed: %s", exc)
            raise GenerationError("Failed to embed query") from exc

        passages = await self.retriever.search(embedding, question, options)
        logger.info(
            "Retrieved %d passages (top=%d, document=%s)",
            len(passages),
            options.top,
            document_id or "*",
        )
        return passages

    async def query(
        self,
        question: str,
        top_k: Optional[int] = None,
        document_id: Optional[str] = None,
    ) -> Answer:
        passages = await self.retrieve(question, top_k, document_id)
        return await self.synthesizer.answer(question, passages)

    async def query_streaming(
        self,
        question: str,
        top_k: Optional[int] = None,
        document_id: Optional[str] = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        """
        Stream the answer to `question`.

        Validation errors raise before the first event, so callers can still
        reject the request. Later failures, retrieval included, end the
        stream with an `error` event.
        """
        if not question or not question.strip():
            raise InvalidInputError("Query is required")

        return self._stream(question, top_k, document_id)

    async def _stream(
        self,
        question: str,
        top_k: Optional[int],
        document_id: Optional[str],
    ) -> AsyncGenerator[StreamEvent, None]:
        try:
            passages = await self.retrieve(question, top_k, document_id)
        except DocRagError as exc:
            logger.error("Streaming query failed before generation: %s", exc)
            yield StreamEvent.failed(exc.public_message)
            return

        events = self.synthesizer.stream(question, passages)
        try:
            async for event in events:
                yield event
        finally:
            await events.aclose()
