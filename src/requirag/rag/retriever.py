import asyncio
from collections.abc import Iterable, Sequence

import structlog

from requirag.rag.config import RetrievalConfig
from requirag.rag.formatter import NO_SOURCE_DOCUMENTS, format_context
from requirag.rag.index.base import AbstractIndex, MetadataFilter
from requirag.rag.types import Citation, RetrievalContext, SearchResult, SourceKind

_logger = structlog.get_logger()


class Retriever:
    """Turns index hits into ranked, cited context for one or more queries."""

    def __init__(self, index: AbstractIndex, retrieval_config: RetrievalConfig) -> None:
        self._index = index
        self._retrieval_config = retrieval_config

    async def retrieve(
        self,
        query: str,
        limit: int | None = None,
        min_score: float | None = None,
        source_kinds: Sequence[SourceKind] | None = None,
    ) -> RetrievalContext:
        """Search the index and keep hits scoring at least ``min_score``.

        An empty match is not an error: the context then carries no results
        and the "no context" text. Index and embedding failures propagate.
        """
        limit = limit if limit is not None else self._retrieval_config.limit
        min_score = min_score if min_score is not None else self._retrieval_config.min_score

        _logger.info(
            "retrieving_context",
            query_preview=query[:80],
            limit=limit,
            min_score=min_score,
            source_kinds=[str(k) for k in source_kinds] if source_kinds else None,
        )

        metadata_filter: MetadataFilter | None = None
        if source_kinds:
            metadata_filter = {"source_kind": [str(kind) for kind in source_kinds]}

        candidates = await self._index.search(query, limit, metadata_filter)
        results = [r for r in candidates if r.score >= min_score][:limit]

        context = _build_context(query, results)
        _logger.info(
            "context_retrieved",
            query_preview=query[:80],
            candidates=len(candidates),
            matched=len(results),
            sources=len(context.citations),
        )
        return context

    async def retrieve_multiple(
        self,
        queries: Sequence[str],
        limit: int | None = None,
        min_score: float | None = None,
        source_kinds: Sequence[SourceKind] | None = None,
    ) -> RetrievalContext:
        """Run every query concurrently and merge the hits into one context.

        A failure in any query fails the whole call.
        """
        contexts = await asyncio.gather(
            *(
                self.retrieve(query, limit=limit, min_score=min_score, source_kinds=source_kinds)
                for query in queries
            )
        )

        final_limit = limit if limit is not None else self._retrieval_config.multi_query_limit
        merged = merge_results((ctx.results for ctx in contexts), final_limit)

        _logger.info("multi_query_merged", queries=len(queries), returned=len(merged))
        return _build_context(" | ".join(queries), merged)

    async def retrieve_with_expansion(
        self,
        query: str,
        expansions: Sequence[str],
        limit: int | None = None,
        min_score: float | None = None,
        source_kinds: Sequence[SourceKind] | None = None,
    ) -> RetrievalContext:
        """Retrieve *query* plus its rephrasings, keeping the primary query's limit.

        Each expansion is searched with the smaller ``expansion_limit``.
        """
        limit = limit if limit is not None else self._retrieval_config.limit
        expansion_limit = self._retrieval_config.expansion_limit

        primary, *expanded = await asyncio.gather(
            self.retrieve(query, limit=limit, min_score=min_score, source_kinds=source_kinds),
            *(
                self.retrieve(
                    expansion,
                    limit=expansion_limit,
                    min_score=min_score,
                    source_kinds=source_kinds,
                )
                for expansion in expansions
            ),
        )

        merged = merge_results(
            [primary.results, *(ctx.results for ctx in expanded)],
            limit,
        )
        _logger.info("expanded_query_merged", expansions=len(expansions), returned=len(merged))
        return _build_context(query, merged)

    async def retrieve_by_source(self, source: str, source_kind: SourceKind) -> RetrievalContext:
        """Return every stored chunk of one source, bypassing similarity search."""
        _logger.info("retrieving_by_source", source=source, source_kind=str(source_kind))

        listed = await self._index.get_by_metadata({"source_kind": str(source_kind)})
        results = [r for r in listed if r.metadata.source == source]

        if not results:
            _logger.warning("source_not_found", source=source, source_kind=str(source_kind))
            return RetrievalContext(
                query=source,
                results=[],
                citations=[],
                formatted_context=NO_SOURCE_DOCUMENTS,
            )

        return _build_context(source, results)


def extract_citations(results: Iterable[SearchResult]) -> list[Citation]:
    """One citation per source, scored by that source's best chunk.

    Sorted by score descending. Python's sort is stable, so sources with equal
    scores stay in the order they were first seen.
    """
    citations: dict[str, Citation] = {}
    for result in results:
        metadata = result.metadata
        existing = citations.get(metadata.source)
        if existing is None:
            citations[metadata.source] = Citation(
                source=metadata.source,
                source_kind=metadata.source_kind,
                title=metadata.title,
                url=metadata.url,
                score=result.score,
            )
        elif result.score > existing.score:
            existing.score = result.score

    return sorted(citations.values(), key=lambda c: c.score, reverse=True)


def merge_results(groups: Iterable[Sequence[SearchResult]], limit: int) -> list[SearchResult]:
    """Union result lists, keep each chunk id once at its best score, rank, truncate."""
    best: dict[str, SearchResult] = {}
    for group in groups:
        for result in group:
            existing = best.get(result.id)
            if existing is None or result.score > existing.score:
                best[result.id] = result

    # dict order is first sighting, so equal scores keep that order after the stable sort
    ranked = sorted(best.values(), key=lambda r: r.score, reverse=True)
    return ranked[:limit]


def _build_context(query: str, results: list[SearchResult]) -> RetrievalContext:
    return RetrievalContext(
        query=query,
        results=results,
        citations=extract_citations(results),
        formatted_context=format_context(results),
    )
