"""
Ingestion Data Models

This module defines the canonical representation of a passage (chunk) and
the options that control how raw document text is split into passages.

Each `Passage` corresponds to ONE unit of embedding and retrieval. Passages
are created in a single chunking pass and never mutated afterwards; a
re-ingested document produces a fresh set.
"""

from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


def passage_id_for(document_id: str, chunk_index: int) -> str:
    """Return the stable passage id for a document position."""
    return f"{document_id}-chunk-{chunk_index}"


class Passage(BaseModel):
    """
    A single passage of a document.

    This model is the authoritative schema for:
    - Chunker output
    - Ingestion job payloads
    - Search index entries (together with an embedding)
    """

    id: str = Field(
        ...,
        min_length=1,
        description="Deterministic identifier '{document_id}-chunk-{chunk_index}'.",
    )

    document_id: str = Field(
        ...,
        min_length=1,
        description="Owning document reference.",
    )

    chunk_index: int = Field(
        ...,
        ge=0,
        description="Zero-based position of the passage within its document.",
    )

    text: str = Field(
        ...,
        min_length=1,
        description="Passage content.",
    )

    page_number: Optional[int] = Field(
        default=None,
        ge=1,
        description="1-based page, only set when the source had several pages.",
    )

    total_chunks: int = Field(
        ...,
        ge=1,
        description="Number of passages produced for the same document.",
    )

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )


class ChunkingOptions(BaseModel):
    """
    Tuning knobs for the chunker.

    `chunk_overlap` is a character budget that the chunker converts into a
    trailing word count (budget // 5), not an exact character overlap.
    """

    max_chunk_size: int = Field(default=1000, ge=1)
    chunk_overlap: int = Field(default=200, ge=0)
    split_on_page_breaks: bool = True

    model_config = ConfigDict(extra="forbid", frozen=True)
