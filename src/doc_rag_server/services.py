"""
Service Container

Every long-lived handle (engine, stores, provider clients, queue) is built
once here from `Settings` and passed by reference into request handlers and
worker loops. Nothing else in the package constructs these objects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from .config import Settings
from .db.document_store import DocumentStore
from .db.models import EMBEDDING_DIMENSIONS
from .db.session import create_engine, create_session_factory
from .ingestion.models import ChunkingOptions
from .ingestion.service import IngestionService
from .jobs.models import RetryPolicy
from .jobs.queue import InMemoryJobQueue, JobQueue, PostgresJobQueue
from .providers.embedder import Embedder
from .providers.llm import LLMClient
from .rag.service import QueryService
from .rag.synthesizer import AnswerSynthesizer
from .search.index import SearchIndex
from .search.retriever import Retriever

logger = logging.getLogger("docrag.services")


@dataclass
class Services:
    settings: Settings
    documents: DocumentStore
    index: SearchIndex
    retriever: Retriever
    embedder: Embedder
    llm: LLMClient
    queue: Optional[JobQueue]
    ingestion: IngestionService
    query: QueryService
    engine: Optional[AsyncEngine] = None

    @property
    def queue_backend(self) -> str:
        return self.settings.queue_backend if self.queue is not None else "disabled"

    async def aclose(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()


def build_queue(settings: Settings, session_factory) -> Optional[JobQueue]:
    """Resolve the queue capability once; None means degraded mode."""
    policy = RetryPolicy(
        max_attempts=settings.job_max_attempts,
        backoff_seconds=settings.job_backoff_seconds,
        multiplier=settings.job_backoff_multiplier,
    )
    if settings.queue_backend == "postgres":
        return PostgresJobQueue(session_factory, policy, settings.job_lease_seconds)
    if settings.queue_backend == "memory":
        logger.warning("Using the in-memory job queue; jobs are lost on restart")
        return InMemoryJobQueue(policy, settings.job_lease_seconds)
    logger.warning("Job queue disabled; uploaded documents will not be indexed")
    return None


def build_services(settings: Settings) -> Services:
    """
    Construct all service handles.

    Raises
    ------
    ValueError
        If the configured embedding size does not match the index column.
    """
    if settings.embedding_dimensions != EMBEDDING_DIMENSIONS:
        raise ValueError(
            f"embedding_dimensions={settings.embedding_dimensions} does not match "
            f"the index column size {EMBEDDING_DIMENSIONS}"
        )

    api_key = settings.openai_api_key.get_secret_value()
    if not api_key:
        logger.warning("OPENAI_API_KEY is not set; provider calls will fail")

    engine = create_engine(settings.database_url)
    session_factory = create_session_factory(engine)

    documents = DocumentStore(session_factory)
    index = SearchIndex(session_factory)
    retriever = Retriever(
        index,
        alpha=settings.hybrid_alpha,
        delete_page_size=settings.delete_page_size,
    )
    embedder = Embedder(
        api_key=api_key,
        model=settings.embedding_model,
        base_url=settings.openai_base_url,
        dimensions=settings.embedding_dimensions,
        batch_size=settings.embedding_batch_size,
        timeout=settings.provider_timeout,
    )
    llm = LLMClient(
        api_key=api_key,
        model=settings.completion_model,
        base_url=settings.openai_base_url,
        temperature=settings.completion_temperature,
        max_tokens=settings.completion_max_tokens,
        timeout=settings.provider_timeout,
    )
    queue = build_queue(settings, session_factory)

    chunking = ChunkingOptions(
        max_chunk_size=settings.chunk_max_size,
        chunk_overlap=settings.chunk_overlap,
        split_on_page_breaks=settings.chunk_split_on_page_breaks,
    )

    return Services(
        settings=settings,
        documents=documents,
        index=index,
        retriever=retriever,
        embedder=embedder,
        llm=llm,
        queue=queue,
        ingestion=IngestionService(documents, retriever, queue, chunking),
        query=QueryService(
            embedder,
            retriever,
            AnswerSynthesizer(llm, preview_length=settings.citation_preview_length),
            default_top_k=settings.search_top_k,
        ),
        engine=engine,
    )
