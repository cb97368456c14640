"""
Search Data Models

Types exchanged between the retriever, the search index and the answer
synthesizer. Search results are ephemeral and never persisted.
"""

from __future__ import annotations

from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from ..ingestion.models import Passage


class SearchFilter(BaseModel):
    """
    Scoping predicate for a search.

    Every field that is set must match; an empty filter matches everything.
    """
    document_id: Optional[str] = None
    page_number: Optional[int] = Field(default=None, ge=1)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def is_empty(self) -> bool:
        return self.document_id is None and self.page_number is None


class SearchOptions(BaseModel):
    top: int = Field(default=5, ge=1, le=100)
    filter: SearchFilter = Field(default_factory=SearchFilter)
    hybrid_search: bool = True

    model_config = ConfigDict(extra="forbid", frozen=True)


class SearchResult(BaseModel):
    passage_id: str
    document_id: str
    text: str
    score: float
    page_number: Optional[int] = None
    chunk_index: Optional[int] = None

    model_config = ConfigDict(frozen=True)


class IndexEntry(BaseModel):
    """A passage paired with its embedding, ready to be written to the index."""
    passage: Passage
    embedding: List[float] = Field(..., min_length=1)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def pair(cls, passages: List[Passage], embeddings: List[List[float]]) -> List["IndexEntry"]:
        if len(passages) != len(embeddings):
            raise ValueError(
                f"Embedding count does not match passage count "
                f"({len(embeddings)} != {len(passages)})"
            )
        return [cls(passage=p, embedding=e) for p, e in zip(passages, embeddings)]
