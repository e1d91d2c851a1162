import asyncio
import re
from collections.abc import Sequence
from typing import Any

import structlog

from requirag.embedding import create_embedding_provider
from requirag.rag.chunker import Chunker
from requirag.rag.config import TOOLS_CONFIG_PATH, RagConfig, SourcesConfig
from requirag.rag.index import AbstractIndex, create_index
from requirag.rag.loaders import AbstractLoader
from requirag.rag.loaders.confluence import ConfluenceLoader
from requirag.rag.loaders.jira import JiraLoader
from requirag.rag.loaders.local import LocalFileLoader
from requirag.rag.retriever import Retriever
from requirag.rag.types import Chunk, RetrievalContext, SourceKind
from requirag.util import load_yaml_config

_logger = structlog.get_logger()

_MAX_EXPANSIONS = 3

# (term, replacements, suffix appended to the unchanged query)
_EXPANSION_RULES: tuple[tuple[str, tuple[str, ...], str | None], ...] = (
    ("test", ("scenario", "validation"), None),
    ("feature", ("functionality", "requirement"), None),
    ("user", ("customer",), "acceptance criteria"),
)


def generate_query_expansions(query: str) -> list[str]:
    """Rephrase a requirements query with domain synonyms.

    ``test`` becomes ``scenario``/``validation``, ``feature`` becomes
    ``functionality``/``requirement``, and a query about a ``user`` is also
    tried with ``customer`` and with "acceptance criteria" appended.
    """
    expansions: list[str] = []
    lowered = query.lower()

    for term, replacements, suffix in _EXPANSION_RULES:
        if term not in lowered:
            continue
        pattern = re.compile(re.escape(term), re.IGNORECASE)
        expansions.extend(pattern.sub(replacement, query) for replacement in replacements)
        if suffix:
            expansions.append(f"{query} {suffix}")

    return expansions[:_MAX_EXPANSIONS]


class RetrievalService:
    """Entry point for agents: indexing of configured sources plus retrieval."""

    def __init__(
        self,
        index: AbstractIndex,
        retriever: Retriever,
        chunker: Chunker,
        tool_config: dict[str, Any] | None = None,
    ) -> None:
        self._index = index
        self._retriever = retriever
        self._chunker = chunker
        self._tool_config = tool_config or {}

    async def initialize(self) -> None:
        await self._index.initialize()

    async def index_documents(self, sources: SourcesConfig) -> int:
        """Load every configured source and store the chunks. Returns the chunk count."""
        loaders: list[AbstractLoader] = []
        if sources.jira:
            loaders.append(JiraLoader(sources.jira, self._tool_config, self._chunker))
        if sources.confluence:
            loaders.append(ConfluenceLoader(sources.confluence, self._tool_config, self._chunker))
        if sources.local:
            loaders.append(LocalFileLoader(sources.local, self._tool_config, self._chunker))

        _logger.info("indexing_started", loaders=[type(loader).__name__ for loader in loaders])

        chunks: list[Chunk] = []
        for loader in loaders:
            # Loaders use blocking HTTP clients
            chunks.extend(await asyncio.to_thread(loader.load))

        if not chunks:
            _logger.warning("no_chunks_produced")
            return 0

        await self._index.add(chunks)
        _logger.info("indexing_complete", chunks=len(chunks))
        return len(chunks)

    async def fetch(
        self,
        query: str,
        limit: int | None = None,
        min_score: float | None = None,
        source_kinds: Sequence[SourceKind] | None = None,
        expand_query: bool = False,
    ) -> RetrievalContext:
        if expand_query:
            expansions = generate_query_expansions(query)
            _logger.debug("query_expanded", query_preview=query[:80], expansions=expansions)
            return await self._retriever.retrieve_with_expansion(
                query,
                expansions,
                limit=limit,
                min_score=min_score,
                source_kinds=source_kinds,
            )

        return await self._retriever.retrieve(
            query, limit=limit, min_score=min_score, source_kinds=source_kinds
        )

    async def fetch_multiple(
        self,
        queries: Sequence[str],
        limit: int | None = None,
        min_score: float | None = None,
        source_kinds: Sequence[SourceKind] | None = None,
    ) -> RetrievalContext:
        return await self._retriever.retrieve_multiple(
            queries, limit=limit, min_score=min_score, source_kinds=source_kinds
        )

    async def fetch_by_source(self, source: str, source_kind: SourceKind) -> RetrievalContext:
        return await self._retriever.retrieve_by_source(source, source_kind)

    async def has_documents(self) -> bool:
        return await self._index.has_documents()

    async def document_count(self) -> int:
        return await self._index.count()

    async def clear_documents(self) -> None:
        await self._index.clear()
        _logger.info("documents_cleared")


def create_service(
    config: RagConfig, tool_config: dict[str, Any] | None = None
) -> RetrievalService:
    """Build the embedding provider, index, retriever and chunker once, wired together."""
    embedding_provider = create_embedding_provider(config.embedding)
    index = create_index(config.index, embedding_provider)
    retriever = Retriever(index, config.retrieval)
    chunker = Chunker(
        max_chunk_size=config.chunking.max_chunk_size,
        overlap=config.chunking.overlap,
    )
    if tool_config is None:
        tool_config = load_yaml_config(TOOLS_CONFIG_PATH)
    return RetrievalService(index, retriever, chunker, tool_config)
