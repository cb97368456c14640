"""
Hybrid Retriever

Combines vector similarity and keyword relevance from the search index into
one ranking using weighted Reciprocal Rank Fusion (RRF):

    score(p) = alpha / (k + vector_rank(p)) + (1 - alpha) / (k + keyword_rank(p))

Passages missing from one ranking get that ranking's length + 1 as rank.
With hybrid search disabled the raw cosine similarity is the score.

An empty result list is a normal outcome; index failures propagate as
`IndexOperationError` and are not retried at read time.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Protocol

from ..core.errors import InvalidInputError
from .models import SearchFilter, SearchOptions, SearchResult

logger = logging.getLogger("docrag.retriever")

RRF_K = 60


class SupportsHybridSearch(Protocol):
    async def vector_search(
        self,
        query_embedding: List[float],
        limit: int,
        search_filter: Optional[SearchFilter] = None,
    ) -> List[SearchResult]: ...

    async def keyword_search(
        self,
        query_text: str,
        limit: int,
        search_filter: Optional[SearchFilter] = None,
    ) -> List[SearchResult]: ...

    async def delete_where(self, document_id: str, page_size: int = 1000) -> int: ...


def fuse_rankings(
    vector_hits: List[SearchResult],
    keyword_hits: List[SearchResult],
    alpha: float = 0.5,
    k: int = RRF_K,
) -> List[SearchResult]:
    """
    Merge two best-first rankings with weighted RRF.

    Returns every distinct passage once, ordered by fused score descending.
    Ties keep vector order first.
    """
    vector_ranks = {hit.passage_id: rank for rank, hit in enumerate(vector_hits, start=1)}
    keyword_ranks = {hit.passage_id: rank for rank, hit in enumerate(keyword_hits, start=1)}
    missing_vector_rank = len(vector_hits) + 1
    missing_keyword_rank = len(keyword_hits) + 1

    unique: Dict[str, SearchResult] = {}
    for hit in vector_hits + keyword_hits:
        unique.setdefault(hit.passage_id, hit)

    fused = [
        hit.model_copy(
            update={
                "score": alpha / (k + vector_ranks.get(pid, missing_vector_rank))
                + (1 - alpha) / (k + keyword_ranks.get(pid, missing_keyword_rank))
            }
        )
        for pid, hit in unique.items()
    ]
    fused.sort(key=lambda hit: hit.score, reverse=True)
    return fused


class Retriever:
    """
    Query-time entry point to the search index.

    Parameters
    ----------
    index:
        Search index exposing vector and keyword search.
    alpha:
        Weight of the vector ranking in hybrid fusion (0..1).
    candidate_multiplier:
        Each ranking fetches `top * candidate_multiplier` candidates before
        fusion.
    delete_page_size:
        Page size of the id lookup used by `delete_by_document`.
    """

    def __init__(
        self,
        index: SupportsHybridSearch,
        *,
        alpha: float = 0.5,
        candidate_multiplier: int = 2,
        delete_page_size: int = 1000,
    ) -> None:
        self._index = index
        self.alpha = alpha
        self.candidate_multiplier = candidate_multiplier
        self.delete_page_size = delete_page_size

    async def search(
        self,
        query_embedding: List[float],
        query_text: str,
        options: Optional[SearchOptions] = None,
    ) -> List[SearchResult]:
        """
        Return at most `options.top` results, best first.
        """
        options = options or SearchOptions()
        if not query_embedding:
            raise InvalidInputError("Query embedding is required")

        if not options.hybrid_search:
            hits = await self._index.vector_search(query_embedding, options.top, options.filter)
            return sorted(hits, key=lambda hit: hit.score, reverse=True)[: options.top]

        if not query_text or not query_text.strip():
            raise InvalidInputError("Query text is required for hybrid search")

        limit = options.top * self.candidate_multiplier
        vector_hits = await self._index.vector_search(query_embedding, limit, options.filter)
        keyword_hits = await self._index.keyword_search(query_text, limit, options.filter)

        results = fuse_rankings(vector_hits, keyword_hits, alpha=self.alpha)[: options.top]
        logger.debug(
            "Hybrid search: %d vector + %d keyword candidates -> %d results",
            len(vector_hits),
            len(keyword_hits),
            len(results),
        )
        return results

    async def delete_by_document(self, document_id: str) -> int:
        """Remove every indexed passage of `document_id`."""
        deleted = await self._index.delete_where(document_id, page_size=self.delete_page_size)
        logger.info("Deleted %d passages of document %s from the index", deleted, document_id)
        return deleted
