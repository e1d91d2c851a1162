from requirag.embedding.provider import AbstractEmbeddingProvider
from requirag.rag.config import IndexBackend, IndexConfig
from requirag.rag.index.base import AbstractIndex, MetadataFilter
from requirag.rag.index.memory import InMemoryIndex


def create_index(
    config: IndexConfig,
    embedding_provider: AbstractEmbeddingProvider,
) -> AbstractIndex:
    match config.backend:
        case IndexBackend.CHROMA:
            from requirag.rag.index.chroma import ChromaIndex

            return ChromaIndex.from_http(
                host=config.chroma.host,
                port=config.chroma.port,
                embedding_provider=embedding_provider,
                collection_name=config.collection,
                ssl=config.chroma.ssl,
            )
        case IndexBackend.PGVECTOR:
            from requirag.rag.index.pgvector import PgVectorIndex
            from requirag.util.db import create_db_engine

            return PgVectorIndex(
                engine=create_db_engine(config.database_url),
                embedding_provider=embedding_provider,
                collection_name=config.collection,
            )
        case IndexBackend.MEMORY:
            return InMemoryIndex(embedding_provider, collection_name=config.collection)
        case _:
            raise ValueError(f"Unknown index backend: {config.backend}")


__all__ = [
    "AbstractIndex",
    "InMemoryIndex",
    "MetadataFilter",
    "create_index",
]
