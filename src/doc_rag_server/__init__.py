"""Document ingestion and retrieval-augmented question answering service."""

__version__ = "1.0.0"
