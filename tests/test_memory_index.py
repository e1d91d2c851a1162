import pytest

from requirag.embedding.provider import AbstractEmbeddingProvider
from requirag.rag.chunker import Chunker
from requirag.rag.config import RetrievalConfig
from requirag.rag.index.memory import InMemoryIndex
from requirag.rag.retriever import Retriever
from requirag.rag.types import SENTINEL_SCORE, Chunk, ChunkMetadata, SourceKind


def _chunk(chunk_id: str, text: str, source_kind: SourceKind = SourceKind.LOCAL) -> Chunk:
    return Chunk(
        id=chunk_id,
        text=text,
        metadata=ChunkMetadata(
            source=chunk_id,
            source_kind=source_kind,
            timestamp="2026-01-01T00:00:00+00:00",
        ),
    )


def _document() -> str:
    sentences = [" ".join([f"s{i:02d}w"] * 19 + [f"s{i:02d}."]) for i in range(1, 25)]
    return " ".join(sentences)


class TestInMemoryIndex:
    @pytest.mark.asyncio
    async def test_empty_index(self, embedding_provider: AbstractEmbeddingProvider) -> None:
        index = InMemoryIndex(embedding_provider)

        assert await index.count() == 0
        assert await index.has_documents() is False
        assert await index.search("anything", limit=5) == []

    def test_collection_name_is_required(
        self, embedding_provider: AbstractEmbeddingProvider
    ) -> None:
        with pytest.raises(ValueError):
            InMemoryIndex(embedding_provider, collection_name="")

    @pytest.mark.asyncio
    async def test_search_ranks_by_similarity(
        self, embedding_provider: AbstractEmbeddingProvider
    ) -> None:
        index = InMemoryIndex(embedding_provider)
        await index.add([_chunk("a", "zzzz zzzz"), _chunk("b", "login"), _chunk("c", "log")])

        results = await index.search("login", limit=2)

        assert [r.id for r in results] == ["b", "c"]
        assert results[0].score == pytest.approx(1.0)
        assert results[0].score >= results[1].score

    @pytest.mark.asyncio
    async def test_add_replaces_chunks_with_the_same_id(
        self, embedding_provider: AbstractEmbeddingProvider
    ) -> None:
        index = InMemoryIndex(embedding_provider)
        await index.add([_chunk("a", "first")])
        await index.add([_chunk("a", "second")])

        assert await index.count() == 1
        [result] = await index.search("second", limit=1)
        assert result.text == "second"

    @pytest.mark.asyncio
    async def test_metadata_filter_applies_to_search_and_listing(
        self, embedding_provider: AbstractEmbeddingProvider
    ) -> None:
        index = InMemoryIndex(embedding_provider)
        await index.add(
            [
                _chunk("j", "login", SourceKind.JIRA),
                _chunk("c", "login", SourceKind.CONFLUENCE),
                _chunk("l", "login", SourceKind.LOCAL),
            ]
        )

        searched = await index.search("login", limit=10, metadata_filter={"source_kind": ["jira"]})
        listed = await index.get_by_metadata({"source_kind": [SourceKind.JIRA, "local"]})

        assert [r.id for r in searched] == ["j"]
        assert sorted(r.id for r in listed) == ["j", "l"]
        assert all(r.score == SENTINEL_SCORE for r in listed)

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, embedding_provider: AbstractEmbeddingProvider) -> None:
        index = InMemoryIndex(embedding_provider)
        await index.add([_chunk("a", "one"), _chunk("b", "two"), _chunk("c", "three")])

        await index.delete(["a", "missing"])
        assert await index.count() == 2

        await index.clear()
        assert await index.count() == 0
        assert await index.has_documents() is False

    @pytest.mark.asyncio
    async def test_update_metadata(self, embedding_provider: AbstractEmbeddingProvider) -> None:
        index = InMemoryIndex(embedding_provider)
        await index.add([_chunk("a", "one")])

        await index.update_metadata("a", {"title": "Renamed", "reviewed": True})

        [result] = await index.get_by_metadata({"reviewed": True})
        assert result.metadata.title == "Renamed"
        assert result.metadata.source == "a"

    @pytest.mark.asyncio
    async def test_update_metadata_of_unknown_chunk(
        self, embedding_provider: AbstractEmbeddingProvider
    ) -> None:
        index = InMemoryIndex(embedding_provider)

        with pytest.raises(KeyError):
            await index.update_metadata("missing", {"title": "x"})

    @pytest.mark.asyncio
    async def test_update_metadata_keeps_values_a_field_cannot_hold(
        self, embedding_provider: AbstractEmbeddingProvider
    ) -> None:
        index = InMemoryIndex(embedding_provider)
        await index.add([_chunk("a", "one")])

        await index.update_metadata("a", {"chunk_index": "second"})

        [result] = await index.get_by_metadata({"chunk_index": "second"})
        assert result.metadata.chunk_index is None
        assert result.metadata.extra == {"chunk_index": "second"}

    @pytest.mark.asyncio
    async def test_update_metadata_with_unknown_source_kind_changes_nothing(
        self, embedding_provider: AbstractEmbeddingProvider
    ) -> None:
        index = InMemoryIndex(embedding_provider)
        await index.add([_chunk("a", "one")])

        with pytest.raises(ValueError, match="source_kind"):
            await index.update_metadata("a", {"source_kind": "wiki", "title": "Renamed"})

        [result] = await index.get_by_metadata({"source_kind": "local"})
        assert result.metadata.title is None


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_one_document_is_chunked_indexed_and_retrieved(
        self, embedding_provider: AbstractEmbeddingProvider
    ) -> None:
        chunks = Chunker(max_chunk_size=1000, overlap=200).chunk_document(
            text=_document(),
            source="requirements.md",
            source_kind=SourceKind.LOCAL,
            title="Requirements",
        )
        assert len(chunks) == 3

        index = InMemoryIndex(embedding_provider)
        await index.add(chunks)
        retriever = Retriever(index, RetrievalConfig())

        context = await retriever.retrieve("topic", limit=5, min_score=0)

        assert len(context.results) == 3
        assert len(context.citations) == 1
        assert context.citations[0].source == "requirements.md"
        assert context.formatted_context == (
            "### LOCAL: Requirements\n\n" + "\n\n".join(chunk.text for chunk in chunks)
        )
