"""
Search Package

Hybrid (vector + keyword) passage index on PostgreSQL and the retriever
that fuses its rankings.
"""

from .models import IndexEntry, SearchFilter, SearchOptions, SearchResult
from .retriever import Retriever, fuse_rankings

__all__ = [
    "IndexEntry",
    "SearchFilter",
    "SearchOptions",
    "SearchResult",
    "Retriever",
    "fuse_rankings",
]
