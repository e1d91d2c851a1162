import asyncio
import json
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

import structlog
from sqlalchemy import Engine, delete, func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from requirag.embedding.provider import AbstractEmbeddingProvider
from requirag.rag.index.base import (
    AbstractIndex,
    MetadataFilter,
    distance_to_similarity,
    filter_values,
)
from requirag.rag.index.models import ChunkRecord
from requirag.rag.types import SENTINEL_SCORE, Chunk, ChunkMetadata, SearchResult
from requirag.util.db import init_db, session_scope

_logger = structlog.get_logger()

_T = TypeVar("_T")


class PgVectorIndex(AbstractIndex):
    """Index stored in PostgreSQL with the pgvector extension.

    All collections share the ``chunks`` table and are told apart by its
    ``collection`` column. SQLAlchemy sessions are blocking, so each
    operation runs in a worker thread.
    """

    def __init__(
        self,
        engine: Engine,
        embedding_provider: AbstractEmbeddingProvider,
        collection_name: str = "requirements",
    ) -> None:
        super().__init__(collection_name)
        self._engine = engine
        self._embedding_provider = embedding_provider
        self._initialized = False

    async def initialize(self) -> None:
        if self._initialized:
            return
        await asyncio.to_thread(init_db, self._engine)
        self._initialized = True
        _logger.info("pgvector_collection_ready", collection=self.collection_name)

    async def add(self, chunks: Sequence[Chunk]) -> None:
        if not chunks:
            _logger.warning("index_add_empty", collection=self.collection_name)
            return

        await self.initialize()
        embeddings = await self._embedding_provider.embed([c.text for c in chunks])

        def _upsert(session: Session) -> None:
            for chunk, embedding in zip(chunks, embeddings, strict=True):
                session.merge(
                    ChunkRecord(
                        collection=self.collection_name,
                        id=chunk.id,
                        content=chunk.text,
                        metadata_=chunk.metadata.to_record(),
                        embedding=embedding,
                    )
                )

        await self._run(_upsert)
        _logger.info("chunks_added", collection=self.collection_name, count=len(chunks))

    async def search(
        self,
        query: str,
        limit: int,
        metadata_filter: MetadataFilter | None = None,
    ) -> list[SearchResult]:
        if limit <= 0:
            return []

        await self.initialize()
        query_embedding = await self._embedding_provider.embed_query(query)
        distance = ChunkRecord.embedding.cosine_distance(query_embedding)

        stmt = (
            select(
                ChunkRecord.id,
                ChunkRecord.content,
                ChunkRecord.metadata_,
                distance.label("distance"),
            )
            .where(*self._conditions(metadata_filter))
            .order_by(distance)
            .limit(limit)
        )

        def _query(session: Session) -> list[SearchResult]:
            return [
                SearchResult(
                    id=row.id,
                    text=row.content,
                    metadata=ChunkMetadata.from_record(dict(row.metadata_ or {})),
                    score=distance_to_similarity(row.distance),
                )
                for row in session.execute(stmt).fetchall()
            ]

        results = await self._run(_query)
        _logger.debug(
            "pgvector_search",
            collection=self.collection_name,
            query_preview=query[:80],
            matched=len(results),
        )
        return results

    async def delete(self, ids: Sequence[str]) -> None:
        if not ids:
            return
        await self.initialize()
        stmt = delete(ChunkRecord).where(
            ChunkRecord.collection == self.collection_name,
            ChunkRecord.id.in_(list(ids)),
        )
        await self._run(lambda session: session.execute(stmt))
        _logger.info("chunks_deleted", collection=self.collection_name, count=len(ids))

    async def clear(self) -> None:
        await self.initialize()
        stmt = delete(ChunkRecord).where(ChunkRecord.collection == self.collection_name)
        await self._run(lambda session: session.execute(stmt))
        _logger.info("index_cleared", collection=self.collection_name)

    async def count(self) -> int:
        await self.initialize()
        stmt = select(func.count()).select_from(ChunkRecord).where(*self._conditions(None))
        return int(await self._run(lambda session: session.execute(stmt).scalar_one()))

    async def get_by_metadata(self, metadata_filter: MetadataFilter) -> list[SearchResult]:
        await self.initialize()
        stmt = select(ChunkRecord.id, ChunkRecord.content, ChunkRecord.metadata_).where(
            *self._conditions(metadata_filter)
        )

        def _query(session: Session) -> list[SearchResult]:
            return [
                SearchResult(
                    id=row.id,
                    text=row.content,
                    metadata=ChunkMetadata.from_record(dict(row.metadata_ or {})),
                    score=SENTINEL_SCORE,
                )
                for row in session.execute(stmt).fetchall()
            ]

        return await self._run(_query)

    async def update_metadata(self, chunk_id: str, partial: dict[str, Any]) -> None:
        await self.initialize()

        def _update(session: Session) -> None:
            record = session.get(ChunkRecord, (self.collection_name, chunk_id))
            if record is None:
                raise KeyError(f"Unknown chunk id: {chunk_id}")
            current = ChunkMetadata.from_record(dict(record.metadata_ or {}))
            # Reassign rather than mutate so the JSONB change is tracked
            record.metadata_ = current.patched(partial).to_record()

        await self._run(_update)
        _logger.info("chunk_metadata_updated", collection=self.collection_name, chunk_id=chunk_id)

    def _conditions(self, metadata_filter: MetadataFilter | None) -> list[ColumnElement[bool]]:
        conditions: list[ColumnElement[bool]] = [ChunkRecord.collection == self.collection_name]
        for key, value in (metadata_filter or {}).items():
            # ->> renders JSON scalars as text: true, 3, 0.5
            values = [v if isinstance(v, str) else json.dumps(v) for v in filter_values(value)]
            conditions.append(ChunkRecord.metadata_[key].astext.in_(values))
        return conditions

    async def _run(self, work: Callable[[Session], _T]) -> _T:
        def _in_session() -> _T:
            with session_scope(self._engine) as session:
                return work(session)

        return await asyncio.to_thread(_in_session)
