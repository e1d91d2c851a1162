import json
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any

Scalar = str | int | float | bool

# Score given to chunks fetched by metadata rather than by similarity
SENTINEL_SCORE = 1.0


class SourceKind(StrEnum):
    JIRA = "jira"  # issue tracker
    CONFLUENCE = "confluence"  # wiki
    LOCAL = "local"  # local file


_KNOWN_KEYS = (
    "source",
    "source_kind",
    "timestamp",
    "title",
    "url",
    "issue_key",
    "chunk_index",
    "total_chunks",
)


@dataclass
class ChunkMetadata:
    """Metadata stored next to every chunk.

    ``source``, ``source_kind`` and ``timestamp`` are always present. Anything
    a loader wants to keep beyond the named fields goes into ``extra``.
    """

    source: str
    source_kind: SourceKind
    timestamp: str  # ISO-8601
    title: str | None = None
    url: str | None = None
    issue_key: str | None = None
    chunk_index: int | None = None
    total_chunks: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_record(self) -> dict[str, Scalar]:
        """Flatten into the scalar-only mapping vector stores accept.

        ``None`` values are dropped and non-scalar values are serialized to a
        string, so nothing a loader attached is lost or rejected.
        """
        record: dict[str, Scalar] = {}
        for key, value in self.extra.items():
            coerced = coerce_metadata_value(value)
            if coerced is not None:
                record[str(key)] = coerced

        named: dict[str, Any] = {
            "source": self.source,
            "source_kind": str(self.source_kind),
            "timestamp": self.timestamp,
            "title": self.title,
            "url": self.url,
            "issue_key": self.issue_key,
            "chunk_index": self.chunk_index,
            "total_chunks": self.total_chunks,
        }
        for key, value in named.items():
            if value is not None:
                record[key] = value
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "ChunkMetadata":
        """Rebuild metadata from a flat record.

        A value a numeric field cannot hold is not dropped: the field stays
        empty and the value is kept as a string in ``extra`` under the same
        key, which ``to_record`` writes back unchanged. An unknown
        ``source_kind`` raises :class:`ValueError`.
        """
        extra = {k: v for k, v in record.items() if k not in _KNOWN_KEYS}

        counters: dict[str, int | None] = {}
        for key in ("chunk_index", "total_chunks"):
            value = record.get(key)
            try:
                counters[key] = _optional_int(value)
            except (TypeError, ValueError):
                counters[key] = None
                extra[key] = str(coerce_metadata_value(value))

        return cls(
            source=str(record.get("source", "")),
            source_kind=_source_kind(record.get("source_kind", SourceKind.LOCAL)),
            timestamp=str(record.get("timestamp", "")),
            title=_optional_str(record.get("title")),
            url=_optional_str(record.get("url")),
            issue_key=_optional_str(record.get("issue_key")),
            chunk_index=counters["chunk_index"],
            total_chunks=counters["total_chunks"],
            extra=extra,
        )

    def patched(self, partial: dict[str, Any]) -> "ChunkMetadata":
        """Return a copy with *partial* merged in, using the same rules as storage.

        Raises :class:`ValueError` for an unknown ``source_kind`` before
        anything is changed.
        """
        return ChunkMetadata.from_record({**self.to_record(), **partial})


@dataclass(frozen=True)
class Chunk:
    id: str
    text: str
    metadata: ChunkMetadata

    def with_metadata(self, metadata: ChunkMetadata) -> "Chunk":
        return replace(self, metadata=metadata)


@dataclass
class SearchResult:
    id: str
    text: str
    metadata: ChunkMetadata
    score: float  # cosine similarity, higher is more relevant


@dataclass
class Citation:
    source: str
    source_kind: SourceKind
    title: str | None
    url: str | None
    score: float  # best score among this source's chunks


@dataclass
class RetrievalContext:
    query: str
    results: list[SearchResult]
    citations: list[Citation]
    formatted_context: str


def coerce_metadata_value(value: Any) -> Scalar | None:
    if value is None:
        return None
    if isinstance(value, str | int | float | bool):
        return value
    try:
        return json.dumps(value, default=str, sort_keys=True)
    except (TypeError, ValueError):
        return str(value)


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return value if isinstance(value, str) else str(coerce_metadata_value(value))


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValueError(f"Not an integer: {value!r}")
    return int(value)


def _source_kind(value: Any) -> SourceKind:
    try:
        return SourceKind(value)
    except ValueError:
        valid = ", ".join(kind.value for kind in SourceKind)
        raise ValueError(f"Invalid 'source_kind': {value!r}. Must be one of: {valid}") from None
