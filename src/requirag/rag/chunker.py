import re
from datetime import UTC, datetime
from typing import Any

from requirag.rag.types import Chunk, ChunkMetadata, SourceKind

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")

# Overlap is expressed in characters; one word is assumed to be ~5 of them
_CHARS_PER_WORD = 5


def chunk_text(text: str, max_size: int = 1000, overlap: int = 200) -> list[str]:
    """Split text into sentence-aligned chunks of roughly ``max_size`` characters.

    Each chunk after the first starts with the trailing ``overlap // 5``
    whitespace-delimited words of the previous one, joined by single spaces.
    A sentence longer than ``max_size`` is never split and becomes an
    oversized chunk of its own.
    """
    sentences = [s for s in _SENTENCE_BOUNDARY.split(text.strip()) if s]
    overlap_words = overlap // _CHARS_PER_WORD

    chunks: list[str] = []
    buffer = ""

    for sentence in sentences:
        if buffer and len(buffer) + 1 + len(sentence) > max_size:
            closed = buffer.strip()
            chunks.append(closed)
            tail = closed.split()[-overlap_words:] if overlap_words > 0 else []
            buffer = " ".join([*tail, sentence])
        else:
            buffer = f"{buffer} {sentence}" if buffer else sentence

    if buffer.strip():
        chunks.append(buffer.strip())

    return chunks


class Chunker:
    """Turns a normalized document into indexable chunks."""

    def __init__(self, max_chunk_size: int = 1000, overlap: int = 200) -> None:
        if max_chunk_size <= 0:
            raise ValueError("max_chunk_size must be positive")
        if overlap < 0:
            raise ValueError("overlap must not be negative")
        self._max_chunk_size = max_chunk_size
        self._overlap = overlap

    def split(self, text: str) -> list[str]:
        return chunk_text(text, self._max_chunk_size, self._overlap)

    def chunk_document(
        self,
        text: str,
        source: str,
        source_kind: SourceKind,
        title: str | None = None,
        url: str | None = None,
        issue_key: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> list[Chunk]:
        """Split *text* and wrap every piece in a :class:`Chunk`.

        Ids are ``{source_kind}-{source}-{index}``, stable across re-ingestion
        of the same document so upserts replace rather than duplicate.
        """
        pieces = self.split(text)
        timestamp = datetime.now(UTC).isoformat()

        return [
            Chunk(
                id=f"{source_kind}-{source}-{index}",
                text=piece,
                metadata=ChunkMetadata(
                    source=source,
                    source_kind=source_kind,
                    timestamp=timestamp,
                    title=title,
                    url=url,
                    issue_key=issue_key,
                    chunk_index=index,
                    total_chunks=len(pieces),
                    extra=dict(extra or {}),
                ),
            )
            for index, piece in enumerate(pieces)
        ]
