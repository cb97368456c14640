"""
Search Index

PostgreSQL based hybrid index: pgvector cosine similarity over passage
embeddings plus full-text ranking over a generated `tsvector` column.

The index only answers single-mode queries (vector or keyword); fusing the
two rankings is the retriever's job.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from sqlalchemy import delete, func, literal_column, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.errors import IndexOperationError
from ..db.models import PassageEntry
from .models import IndexEntry, SearchFilter, SearchResult

logger = logging.getLogger("docrag.index")

# Must match the configuration of the generated tsvector column.
TEXT_SEARCH_CONFIG = literal_column("'english'::regconfig")

# asyncpg caps a statement at 32767 bind parameters; each row binds seven.
WRITE_BATCH_SIZE = 1000


def _apply_filter(stmt, search_filter: Optional[SearchFilter]):
    if search_filter is None:
        return stmt
    if search_filter.document_id is not None:
        stmt = stmt.where(PassageEntry.document_id == search_filter.document_id)
    if search_filter.page_number is not None:
        stmt = stmt.where(PassageEntry.page_number == search_filter.page_number)
    return stmt


class SearchIndex:
    """
    Hybrid vector + keyword index backed by the `passage_index` table.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        write_batch_size: int = WRITE_BATCH_SIZE,
    ) -> None:
        """
        Parameters
        ----------
        session_factory : async_sessionmaker[AsyncSession]
            Factory producing sessions bound to the application engine.
        write_batch_size : int
            Maximum rows per upsert statement.
        """
        self._session_factory = session_factory
        self.write_batch_size = write_batch_size

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upsert(self, entries: Sequence[IndexEntry]) -> int:
        """
        Insert or replace entries keyed by passage id, in one transaction.
        """
        return await self.replace_document_entries(None, entries)

    async def replace_document_entries(
        self,
        document_id: Optional[str],
        entries: Sequence[IndexEntry],
    ) -> int:
        """
        Upsert `entries` and, when `document_id` is given, remove that
        document's passages beyond the new set.

        `entries` must be one document's complete chunking output, indexed
        `0..n-1`, so every older passage with `chunk_index >= n` is stale.
        Rows are written `write_batch_size` at a time to stay under the
        driver's bind-parameter limit. All statements share one
        transaction, so a failed call leaves the previous state intact.
        """
        if not entries and document_id is None:
            return 0

        rows = [
            {
                "id": entry.passage.id,
                "document_id": entry.passage.document_id,
                "chunk_index": entry.passage.chunk_index,
                "total_chunks": entry.passage.total_chunks,
                "page_number": entry.passage.page_number,
                "text": entry.passage.text,
                "embedding": entry.embedding,
            }
            for entry in entries
        ]

        try:
            async with self._session_factory() as session:
                if document_id is not None:
                    await session.execute(
                        delete(PassageEntry).where(
                            PassageEntry.document_id == document_id,
                            PassageEntry.chunk_index >= len(rows),
                        )
                    )

                for start in range(0, len(rows), self.write_batch_size):
                    await session.execute(_upsert_statement(rows[start:start + self.write_batch_size]))

                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Index write failed for %d entries: %s", len(rows), exc)
            raise IndexOperationError("Failed to index document chunks") from exc

        return len(rows)

    async def delete_where(self, document_id: str, page_size: int = 1000) -> int:
        """
        Remove every passage of a document.

        Ids are looked up a page at a time and bulk-deleted, until a lookup
        comes back short. Returns the number of deleted passages.
        """
        deleted = 0
        try:
            while True:
                async with self._session_factory() as session:
                    result = await session.execute(
                        select(PassageEntry.id)
                        .where(PassageEntry.document_id == document_id)
                        .order_by(PassageEntry.id)
                        .limit(page_size)
                    )
                    ids = [row[0] for row in result.all()]
                    if ids:
                        await session.execute(delete(PassageEntry).where(PassageEntry.id.in_(ids)))
                        await session.commit()

                deleted += len(ids)
                if len(ids) < page_size:
                    return deleted
        except SQLAlchemyError as exc:
            logger.error("Index delete failed for document %s: %s", document_id, exc)
            raise IndexOperationError("Failed to delete document chunks") from exc

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def vector_search(
        self,
        query_embedding: List[float],
        limit: int,
        search_filter: Optional[SearchFilter] = None,
    ) -> List[SearchResult]:
        """
        Rank passages by cosine similarity (1 - cosine distance), best first.
        """
        cosine_distance = PassageEntry.embedding.cosine_distance(query_embedding)
        stmt = (
            select(PassageEntry, (1 - cosine_distance).label("score"))
            .order_by(cosine_distance)
            .limit(limit)
        )
        return await self._run_query(_apply_filter(stmt, search_filter), "vector")

    async def keyword_search(
        self,
        query_text: str,
        limit: int,
        search_filter: Optional[SearchFilter] = None,
    ) -> List[SearchResult]:
        """
        Rank passages by full-text relevance of `query_text`, best first.
        """
        ts_query = func.websearch_to_tsquery(TEXT_SEARCH_CONFIG, query_text)
        rank = func.ts_rank_cd(PassageEntry.text_search, ts_query)
        stmt = (
            select(PassageEntry, rank.label("score"))
            .where(PassageEntry.text_search.op("@@")(ts_query))
            .order_by(rank.desc())
            .limit(limit)
        )
        return await self._run_query(_apply_filter(stmt, search_filter), "keyword")

    async def list_passages(self, document_id: str) -> List[SearchResult]:
        """Return a document's indexed passages in chunk order (score 0)."""
        stmt = (
            select(PassageEntry)
            .where(PassageEntry.document_id == document_id)
            .order_by(PassageEntry.chunk_index)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [_to_result(entry, 0.0) for entry in result.scalars().all()]
        except SQLAlchemyError as exc:
            logger.error("Listing passages failed for document %s: %s", document_id, exc)
            raise IndexOperationError("Failed to list document chunks") from exc

    async def count(self) -> int:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(func.count()).select_from(PassageEntry))
                return result.scalar() or 0
        except SQLAlchemyError as exc:
            logger.error("Counting passages failed: %s", exc)
            raise IndexOperationError("Failed to count indexed passages") from exc

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run_query(self, stmt, mode: str) -> List[SearchResult]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = result.all()
        except SQLAlchemyError as exc:
            logger.error("%s search failed: %s", mode.capitalize(), exc)
            raise IndexOperationError("Failed to search documents") from exc

        return [_to_result(row[0], float(row.score or 0.0)) for row in rows]


def _upsert_statement(rows):
    stmt = pg_insert(PassageEntry).values(rows)
    return stmt.on_conflict_do_update(
        index_elements=[PassageEntry.id],
        set_={
            "document_id": stmt.excluded.document_id,
            "chunk_index": stmt.excluded.chunk_index,
            "total_chunks": stmt.excluded.total_chunks,
            "page_number": stmt.excluded.page_number,
            "text": stmt.excluded.text,
            "embedding": stmt.excluded.embedding,
        },
    )


def _to_result(entry: PassageEntry, score: float) -> SearchResult:
    return SearchResult(
        passage_id=entry.id,
        document_id=entry.document_id,
        text=entry.text,
        score=score,
        page_number=entry.page_number,
        chunk_index=entry.chunk_index,
    )
