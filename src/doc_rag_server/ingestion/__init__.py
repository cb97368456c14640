"""
Ingestion Package

Chunking of extracted document text and the service that records documents
and queues them for indexing.
"""

from .chunker import chunk_document
from .models import ChunkingOptions, Passage, passage_id_for

__all__ = ["chunk_document", "ChunkingOptions", "Passage", "passage_id_for"]
