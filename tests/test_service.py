from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from requirag.embedding.config import OpenAIEmbeddingConfig
from requirag.embedding.provider import AbstractEmbeddingProvider
from requirag.rag.chunker import Chunker
from requirag.rag.config import (
    IndexBackend,
    IndexConfig,
    LocalSourceConfig,
    RagConfig,
    RetrievalConfig,
    SourcesConfig,
)
from requirag.rag.index.memory import InMemoryIndex
from requirag.rag.retriever import Retriever
from requirag.rag.service import RetrievalService, create_service, generate_query_expansions
from requirag.rag.types import SourceKind


def _make_service(
    embedding_provider: AbstractEmbeddingProvider,
) -> tuple[RetrievalService, InMemoryIndex]:
    index = InMemoryIndex(embedding_provider)
    retriever = Retriever(index, RetrievalConfig(min_score=0.0))
    return RetrievalService(index, retriever, Chunker()), index


class TestGenerateQueryExpansions:
    def test_no_matching_terms(self) -> None:
        assert generate_query_expansions("checkout flow") == []

    def test_test_is_rephrased(self) -> None:
        assert generate_query_expansions("login test") == ["login scenario", "login validation"]

    def test_feature_is_rephrased(self) -> None:
        assert generate_query_expansions("Feature list") == [
            "functionality list",
            "requirement list",
        ]

    def test_user_adds_customer_and_acceptance_criteria(self) -> None:
        assert generate_query_expansions("user signup") == [
            "customer signup",
            "user signup acceptance criteria",
        ]

    def test_at_most_three_expansions(self) -> None:
        expansions = generate_query_expansions("user feature test")
        assert expansions == [
            "user feature scenario",
            "user feature validation",
            "user functionality test",
        ]


class TestRetrievalService:
    @pytest.mark.asyncio
    async def test_index_local_files_then_fetch(
        self, tmp_path: Path, embedding_provider: AbstractEmbeddingProvider
    ) -> None:
        (tmp_path / "login.md").write_text("Users sign in with email and password.")
        (tmp_path / "cart.md").write_text("Shoppers add items to the cart.")
        service, _ = _make_service(embedding_provider)
        await service.initialize()

        indexed = await service.index_documents(
            SourcesConfig(
                local=LocalSourceConfig(
                    files=[str(tmp_path / "login.md"), str(tmp_path / "cart.md")]
                )
            )
        )

        assert indexed == 2
        assert await service.document_count() == 2
        assert await service.has_documents() is True

        context = await service.fetch("sign in", limit=1)
        assert len(context.results) == 1
        assert context.results[0].metadata.source_kind == SourceKind.LOCAL

        by_source = await service.fetch_by_source("cart.md", SourceKind.LOCAL)
        assert [r.metadata.source for r in by_source.results] == ["cart.md"]

        await service.clear_documents()
        assert await service.has_documents() is False

    @pytest.mark.asyncio
    async def test_nothing_to_index(self, embedding_provider: AbstractEmbeddingProvider) -> None:
        service, index = _make_service(embedding_provider)

        assert await service.index_documents(SourcesConfig()) == 0
        assert await index.count() == 0

    @pytest.mark.asyncio
    async def test_fetch_with_expansion_runs_rephrased_queries(self) -> None:
        retriever = MagicMock(spec=Retriever)
        retriever.retrieve_with_expansion = AsyncMock()
        service = RetrievalService(MagicMock(), retriever, Chunker())

        await service.fetch("user login test", limit=4, expand_query=True)

        retriever.retrieve_with_expansion.assert_awaited_once_with(
            "user login test",
            ["user login scenario", "user login validation", "customer login test"],
            limit=4,
            min_score=None,
            source_kinds=None,
        )

    @pytest.mark.asyncio
    async def test_fetch_multiple_delegates(self) -> None:
        retriever = MagicMock(spec=Retriever)
        retriever.retrieve_multiple = AsyncMock()
        service = RetrievalService(MagicMock(), retriever, Chunker())

        await service.fetch_multiple(["a", "b"], source_kinds=[SourceKind.JIRA])

        retriever.retrieve_multiple.assert_awaited_once_with(
            ["a", "b"], limit=None, min_score=None, source_kinds=[SourceKind.JIRA]
        )


class TestCreateService:
    def test_wires_a_memory_index(self) -> None:
        config = RagConfig(
            embedding=OpenAIEmbeddingConfig(model="m", api_key="k"),
            index=IndexConfig(backend=IndexBackend.MEMORY, collection="reqs"),
        )

        with patch("requirag.embedding.adapters.openai.AsyncOpenAI"):
            service = create_service(config, tool_config={})

        assert isinstance(service, RetrievalService)
        assert isinstance(service._index, InMemoryIndex)
        assert service._index.collection_name == "reqs"
