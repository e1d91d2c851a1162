from requirag.rag.chunker import Chunker, chunk_text
from requirag.rag.config import (
    ChunkingConfig,
    IndexBackend,
    IndexConfig,
    RagConfig,
    RetrievalConfig,
    SourcesConfig,
    load_rag_config,
)
from requirag.rag.formatter import NO_CONTEXT, NO_SOURCE_DOCUMENTS, format_context
from requirag.rag.index import AbstractIndex, InMemoryIndex, create_index
from requirag.rag.retriever import Retriever, extract_citations, merge_results
from requirag.rag.service import RetrievalService, create_service, generate_query_expansions
from requirag.rag.types import (
    SENTINEL_SCORE,
    Chunk,
    ChunkMetadata,
    Citation,
    RetrievalContext,
    SearchResult,
    SourceKind,
)

__all__ = [
    "NO_CONTEXT",
    "NO_SOURCE_DOCUMENTS",
    "SENTINEL_SCORE",
    "AbstractIndex",
    "Chunk",
    "ChunkMetadata",
    "Chunker",
    "ChunkingConfig",
    "Citation",
    "InMemoryIndex",
    "IndexBackend",
    "IndexConfig",
    "RagConfig",
    "RetrievalConfig",
    "RetrievalContext",
    "RetrievalService",
    "Retriever",
    "SearchResult",
    "SourceKind",
    "SourcesConfig",
    "chunk_text",
    "create_index",
    "create_service",
    "extract_citations",
    "format_context",
    "generate_query_expansions",
    "load_rag_config",
    "merge_results",
]
