"""
Database Package

Provides SQLAlchemy async session management and model definitions
for PostgreSQL with pgvector.
"""

from .session import create_engine, create_session_factory, init_schema
from .models import Base, Document, DocumentStatus, IngestionJobRow, PassageEntry
from .document_store import DocumentRecord, DocumentStats, DocumentStore

__all__ = [
    "create_engine",
    "create_session_factory",
    "init_schema",
    "Base",
    "Document",
    "DocumentStatus",
    "IngestionJobRow",
    "PassageEntry",
    "DocumentRecord",
    "DocumentStats",
    "DocumentStore",
]
