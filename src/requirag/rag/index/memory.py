import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from requirag.embedding.provider import AbstractEmbeddingProvider
from requirag.rag.index.base import AbstractIndex, MetadataFilter, matches_filter
from requirag.rag.types import SENTINEL_SCORE, Chunk, SearchResult

_logger = structlog.get_logger()


@dataclass
class _Entry:
    chunk: Chunk
    vector: list[float]
    norm: float


class InMemoryIndex(AbstractIndex):
    """Brute-force cosine index held in process memory.

    Nothing survives the process; meant for local experiments and tests.
    """

    def __init__(
        self,
        embedding_provider: AbstractEmbeddingProvider,
        collection_name: str = "requirements",
    ) -> None:
        super().__init__(collection_name)
        self._embedding_provider = embedding_provider
        self._entries: dict[str, _Entry] | None = None

    async def initialize(self) -> None:
        if self._entries is None:
            self._entries = {}
            _logger.info("memory_index_created", collection=self.collection_name)

    async def add(self, chunks: Sequence[Chunk]) -> None:
        if not chunks:
            _logger.warning("index_add_empty", collection=self.collection_name)
            return

        entries = await self._collection()
        vectors = await self._embedding_provider.embed([c.text for c in chunks])
        for chunk, vector in zip(chunks, vectors, strict=True):
            entries[chunk.id] = _Entry(chunk=chunk, vector=vector, norm=_norm(vector))

        _logger.info("chunks_added", collection=self.collection_name, count=len(chunks))

    async def search(
        self,
        query: str,
        limit: int,
        metadata_filter: MetadataFilter | None = None,
    ) -> list[SearchResult]:
        entries = await self._collection()
        if not entries or limit <= 0:
            return []

        query_vector = await self._embedding_provider.embed_query(query)
        query_norm = _norm(query_vector)

        scored = [
            SearchResult(
                id=entry.chunk.id,
                text=entry.chunk.text,
                metadata=entry.chunk.metadata,
                score=_cosine(query_vector, query_norm, entry.vector, entry.norm),
            )
            for entry in entries.values()
            if matches_filter(entry.chunk.metadata.to_record(), metadata_filter)
        ]
        scored.sort(key=lambda r: r.score, reverse=True)
        return scored[:limit]

    async def delete(self, ids: Sequence[str]) -> None:
        entries = await self._collection()
        for chunk_id in ids:
            entries.pop(chunk_id, None)
        _logger.info("chunks_deleted", collection=self.collection_name, count=len(ids))

    async def clear(self) -> None:
        self._entries = {}
        _logger.info("index_cleared", collection=self.collection_name)

    async def count(self) -> int:
        return len(await self._collection())

    async def get_by_metadata(self, metadata_filter: MetadataFilter) -> list[SearchResult]:
        entries = await self._collection()
        return [
            SearchResult(
                id=entry.chunk.id,
                text=entry.chunk.text,
                metadata=entry.chunk.metadata,
                score=SENTINEL_SCORE,
            )
            for entry in entries.values()
            if matches_filter(entry.chunk.metadata.to_record(), metadata_filter)
        ]

    async def update_metadata(self, chunk_id: str, partial: dict[str, Any]) -> None:
        entries = await self._collection()
        if chunk_id not in entries:
            raise KeyError(f"Unknown chunk id: {chunk_id}")
        entry = entries[chunk_id]
        entry.chunk = entry.chunk.with_metadata(entry.chunk.metadata.patched(partial))
        _logger.info("chunk_metadata_updated", collection=self.collection_name, chunk_id=chunk_id)

    async def _collection(self) -> dict[str, _Entry]:
        await self.initialize()
        assert self._entries is not None
        return self._entries


def _norm(vector: Sequence[float]) -> float:
    return math.sqrt(sum(v * v for v in vector))


def _cosine(a: Sequence[float], a_norm: float, b: Sequence[float], b_norm: float) -> float:
    if a_norm == 0.0 or b_norm == 0.0:
        return 0.0
    return sum(x * y for x, y in zip(a, b, strict=True)) / (a_norm * b_norm)
