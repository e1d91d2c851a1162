"""Vector index contract shared by every storage backend.

Scores returned by ``search`` are cosine similarities: higher means more
relevant, 1.0 is identical. Backends whose engine reports a distance convert
it with :func:`distance_to_similarity` before handing results out, so callers
can filter on a single ``min_score`` regardless of the engine.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from enum import Enum
from typing import Any

import structlog

from requirag.rag.types import Chunk, Scalar, SearchResult

_logger = structlog.get_logger()

# key -> value (equality) or key -> list of values (membership); keys are AND-ed
MetadataFilter = dict[str, Scalar | Sequence[Scalar]]


class AbstractIndex(ABC):
    """A named collection of embedded chunks."""

    def __init__(self, collection_name: str) -> None:
        if not collection_name:
            raise ValueError("Index collection name must not be empty")
        self.collection_name = collection_name

    @abstractmethod
    async def initialize(self) -> None:
        """Open the collection, creating it when missing. Safe to call repeatedly."""
        ...

    @abstractmethod
    async def add(self, chunks: Sequence[Chunk]) -> None:
        """Embed and store chunks, replacing any existing chunk with the same id."""
        ...

    @abstractmethod
    async def search(
        self,
        query: str,
        limit: int,
        metadata_filter: MetadataFilter | None = None,
    ) -> list[SearchResult]:
        """Return at most *limit* results ranked by descending similarity."""
        ...

    @abstractmethod
    async def delete(self, ids: Sequence[str]) -> None: ...

    @abstractmethod
    async def clear(self) -> None:
        """Drop every chunk in the collection and recreate it empty."""
        ...

    @abstractmethod
    async def count(self) -> int: ...

    @abstractmethod
    async def get_by_metadata(self, metadata_filter: MetadataFilter) -> list[SearchResult]:
        """List chunks matching the filter, each carrying ``SENTINEL_SCORE``."""
        ...

    @abstractmethod
    async def update_metadata(self, chunk_id: str, partial: dict[str, Any]) -> None:
        """Merge *partial* into a stored chunk's metadata. Raises KeyError for unknown ids."""
        ...

    async def has_documents(self) -> bool:
        try:
            return await self.count() > 0
        except Exception:
            _logger.warning("index_count_failed", collection=self.collection_name, exc_info=True)
            return False


def distance_to_similarity(distance: float) -> float:
    return 1.0 - float(distance)


def filter_values(value: Scalar | Sequence[Scalar]) -> list[Scalar]:
    """Normalize a filter value to the plain scalars it accepts."""
    values = [value] if isinstance(value, str) or not isinstance(value, Sequence) else value
    return [v.value if isinstance(v, Enum) else v for v in values]


def matches_filter(record: dict[str, Any], metadata_filter: MetadataFilter | None) -> bool:
    if not metadata_filter:
        return True
    return all(
        record.get(key) in filter_values(expected) for key, expected in metadata_filter.items()
    )
