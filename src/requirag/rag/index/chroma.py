from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

import structlog

from requirag.embedding.provider import AbstractEmbeddingProvider
from requirag.rag.index.base import (
    AbstractIndex,
    MetadataFilter,
    distance_to_similarity,
    filter_values,
)
from requirag.rag.types import SENTINEL_SCORE, Chunk, ChunkMetadata, SearchResult

_logger = structlog.get_logger()

# ChromaDB rejects single requests above ~41k records
_UPSERT_BATCH_SIZE = 5000

ClientFactory = Callable[[], Awaitable[Any]]


class ChromaIndex(AbstractIndex):
    """Index backed by a ChromaDB server through its async HTTP client.

    The collection uses cosine space; Chroma reports cosine *distance*, which
    is converted to similarity on the way out.
    """

    def __init__(
        self,
        client_factory: ClientFactory,
        embedding_provider: AbstractEmbeddingProvider,
        collection_name: str = "requirements",
    ) -> None:
        super().__init__(collection_name)
        self._client_factory = client_factory
        self._embedding_provider = embedding_provider
        self._client: Any = None
        self._collection: Any = None

    @classmethod
    def from_http(
        cls,
        host: str,
        port: int,
        embedding_provider: AbstractEmbeddingProvider,
        collection_name: str = "requirements",
        ssl: bool = False,
    ) -> "ChromaIndex":
        import chromadb

        async def _connect() -> Any:
            return await chromadb.AsyncHttpClient(host=host, port=port, ssl=ssl)

        _logger.info("chroma_index_configured", host=host, port=port, collection=collection_name)
        return cls(_connect, embedding_provider, collection_name)

    async def initialize(self) -> None:
        if self._collection is not None:
            return
        if self._client is None:
            self._client = await self._client_factory()
        self._collection = await self._open_collection()
        _logger.info("chroma_collection_ready", collection=self.collection_name)

    async def add(self, chunks: Sequence[Chunk]) -> None:
        if not chunks:
            _logger.warning("index_add_empty", collection=self.collection_name)
            return

        collection = await self._get_collection()
        texts = [c.text for c in chunks]
        embeddings = await self._embedding_provider.embed(texts)
        ids = [c.id for c in chunks]
        metadatas = [c.metadata.to_record() for c in chunks]

        for i in range(0, len(chunks), _UPSERT_BATCH_SIZE):
            end = i + _UPSERT_BATCH_SIZE
            await collection.upsert(
                ids=ids[i:end],
                embeddings=embeddings[i:end],
                documents=texts[i:end],
                metadatas=metadatas[i:end],
            )

        _logger.info("chunks_added", collection=self.collection_name, count=len(chunks))

    async def search(
        self,
        query: str,
        limit: int,
        metadata_filter: MetadataFilter | None = None,
    ) -> list[SearchResult]:
        collection = await self._get_collection()
        if limit <= 0 or await collection.count() == 0:
            return []

        query_embedding = await self._embedding_provider.embed_query(query)
        results = await collection.query(
            query_embeddings=[query_embedding],
            n_results=limit,
            where=to_chroma_where(metadata_filter),
            include=["documents", "metadatas", "distances"],
        )

        ids: list[str] = (results.get("ids") or [[]])[0]
        documents: list[str | None] = (results.get("documents") or [[]])[0]
        metadatas: list[Mapping[str, Any] | None] = (results.get("metadatas") or [[]])[0]
        distances: list[float] = (results.get("distances") or [[]])[0]

        search_results = _to_listed_results(
            {"ids": ids, "documents": documents, "metadatas": metadatas}
        )
        for i, result in enumerate(search_results):
            result.score = distance_to_similarity(distances[i] if i < len(distances) else 1.0)
        search_results.sort(key=lambda r: r.score, reverse=True)

        _logger.debug(
            "chroma_search",
            collection=self.collection_name,
            query_preview=query[:80],
            matched=len(search_results),
        )
        return search_results

    async def delete(self, ids: Sequence[str]) -> None:
        if not ids:
            return
        collection = await self._get_collection()
        await collection.delete(ids=list(ids))
        _logger.info("chunks_deleted", collection=self.collection_name, count=len(ids))

    async def clear(self) -> None:
        await self._get_collection()
        await self._client.delete_collection(name=self.collection_name)
        self._collection = await self._open_collection()
        _logger.info("index_cleared", collection=self.collection_name)

    async def count(self) -> int:
        collection = await self._get_collection()
        return int(await collection.count())

    async def get_by_metadata(self, metadata_filter: MetadataFilter) -> list[SearchResult]:
        collection = await self._get_collection()
        results = await collection.get(
            where=to_chroma_where(metadata_filter),
            include=["documents", "metadatas"],
        )
        return _to_listed_results(results)

    async def update_metadata(self, chunk_id: str, partial: dict[str, Any]) -> None:
        collection = await self._get_collection()
        existing = await collection.get(ids=[chunk_id], include=["metadatas"])
        if not existing.get("ids"):
            raise KeyError(f"Unknown chunk id: {chunk_id}")

        current = ChunkMetadata.from_record(dict((existing.get("metadatas") or [{}])[0] or {}))
        await collection.update(ids=[chunk_id], metadatas=[current.patched(partial).to_record()])
        _logger.info("chunk_metadata_updated", collection=self.collection_name, chunk_id=chunk_id)

    async def _open_collection(self) -> Any:
        return await self._client.get_or_create_collection(
            name=self.collection_name,
            metadata={"hnsw:space": "cosine"},
            embedding_function=None,
        )

    async def _get_collection(self) -> Any:
        await self.initialize()
        return self._collection


def to_chroma_where(metadata_filter: MetadataFilter | None) -> dict[str, Any] | None:
    """Translate a metadata filter into a Chroma ``where`` clause."""
    if not metadata_filter:
        return None

    clauses: list[dict[str, Any]] = []
    for key, value in metadata_filter.items():
        values = filter_values(value)
        clauses.append({key: values[0]} if len(values) == 1 else {key: {"$in": values}})

    return clauses[0] if len(clauses) == 1 else {"$and": clauses}


def _to_listed_results(results: Mapping[str, Any]) -> list[SearchResult]:
    ids: list[str] = results.get("ids") or []
    documents: list[str | None] = results.get("documents") or []
    metadatas: list[Mapping[str, Any] | None] = results.get("metadatas") or []

    return [
        SearchResult(
            id=chunk_id,
            text=(documents[i] or "") if i < len(documents) else "",
            metadata=ChunkMetadata.from_record(
                dict(metadatas[i] or {}) if i < len(metadatas) else {}
            ),
            score=SENTINEL_SCORE,
        )
        for i, chunk_id in enumerate(ids)
    ]
