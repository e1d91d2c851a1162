from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

from requirag.embedding.config import (
    AbstractEmbeddingConfig,
    BedrockEmbeddingConfig,
    EmbeddingProviderType,
    OpenAIEmbeddingConfig,
    VertexEmbeddingConfig,
)
from requirag.util import PROJECT_ROOT, load_yaml_config

_RAG_CONFIG_PATH = PROJECT_ROOT / "config" / "rag.yaml"
TOOLS_CONFIG_PATH = PROJECT_ROOT / "config" / "tools.yaml"


class IndexBackend(StrEnum):
    CHROMA = "chroma"
    PGVECTOR = "pgvector"
    MEMORY = "memory"


@dataclass
class ChromaConfig:
    host: str = "localhost"
    port: int = 8000
    ssl: bool = False


@dataclass
class IndexConfig:
    backend: IndexBackend = IndexBackend.CHROMA
    collection: str = "requirements"
    chroma: ChromaConfig = field(default_factory=ChromaConfig)
    database_url: str = ""


@dataclass
class RetrievalConfig:
    limit: int = 10
    multi_query_limit: int = 15
    expansion_limit: int = 5
    min_score: float = 0.3  # cosine similarity (1 - cosine distance)


@dataclass
class ChunkingConfig:
    max_chunk_size: int = 1000
    overlap: int = 200


@dataclass
class JiraSourceConfig:
    issues: list[str] = field(default_factory=list)
    jql: str | None = None
    max_results: int = 50
    acceptance_criteria_field: str = "customfield_10000"


@dataclass
class ConfluenceSourceConfig:
    page_ids: list[str] = field(default_factory=list)
    urls: list[str] = field(default_factory=list)


@dataclass
class LocalSourceConfig:
    files: list[str] = field(default_factory=list)


@dataclass
class SourcesConfig:
    jira: JiraSourceConfig | None = None
    confluence: ConfluenceSourceConfig | None = None
    local: LocalSourceConfig | None = None


@dataclass
class LoggingConfig:
    json_output: bool = True
    level: str = "INFO"


@dataclass
class RagConfig:
    embedding: AbstractEmbeddingConfig
    index: IndexConfig = field(default_factory=IndexConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    sources: SourcesConfig = field(default_factory=SourcesConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_rag_config(path: Path | None = None) -> RagConfig:
    raw = load_yaml_config(path or _RAG_CONFIG_PATH)
    return parse_rag_config(raw)


def parse_rag_config(raw: dict[str, Any]) -> RagConfig:
    index = _parse_index(raw.get("index") or {})

    if "embedding" not in raw:
        raise ValueError("Missing 'embedding' section in rag config")
    embedding = _parse_embedding_config(raw["embedding"] or {})

    retrieval_raw = raw.get("retrieval") or {}
    chunking_raw = raw.get("chunking") or {}
    logging_raw = raw.get("logging") or {}

    chunking = ChunkingConfig(
        max_chunk_size=int(chunking_raw.get("max_chunk_size", 1000)),
        overlap=int(chunking_raw.get("overlap", 200)),
    )
    if chunking.max_chunk_size <= 0 or chunking.overlap < 0:
        raise ValueError("'chunking.max_chunk_size' must be positive and 'overlap' non-negative")

    return RagConfig(
        embedding=embedding,
        index=index,
        retrieval=RetrievalConfig(
            limit=int(retrieval_raw.get("limit", 10)),
            multi_query_limit=int(retrieval_raw.get("multi_query_limit", 15)),
            expansion_limit=int(retrieval_raw.get("expansion_limit", 5)),
            min_score=float(retrieval_raw.get("min_score", 0.3)),
        ),
        chunking=chunking,
        sources=parse_sources_config(raw.get("sources") or {}),
        logging=LoggingConfig(
            json_output=_as_bool(logging_raw.get("json", True)),
            level=str(logging_raw.get("level", "INFO")),
        ),
    )


def parse_sources_config(raw: dict[str, Any]) -> SourcesConfig:
    jira_raw = raw.get("jira")
    confluence_raw = raw.get("confluence")
    local_raw = raw.get("local")

    return SourcesConfig(
        jira=(
            JiraSourceConfig(
                issues=[str(key) for key in jira_raw.get("issues", [])],
                jql=jira_raw.get("jql") or None,
                max_results=int(jira_raw.get("max_results", 50)),
                acceptance_criteria_field=jira_raw.get(
                    "acceptance_criteria_field", "customfield_10000"
                ),
            )
            if jira_raw
            else None
        ),
        confluence=(
            ConfluenceSourceConfig(
                page_ids=[str(page_id) for page_id in confluence_raw.get("page_ids", [])],
                urls=list(confluence_raw.get("urls", [])),
            )
            if confluence_raw
            else None
        ),
        local=LocalSourceConfig(files=list(local_raw.get("files", []))) if local_raw else None,
    )


def _parse_index(raw: dict[str, Any]) -> IndexConfig:
    backend_key = raw.get("backend", IndexBackend.CHROMA)
    try:
        backend = IndexBackend(backend_key)
    except ValueError:
        valid = ", ".join(b.value for b in IndexBackend)
        msg = f"Invalid 'index.backend': {backend_key}. Must be one of: {valid}"
        raise ValueError(msg) from None

    collection = raw.get("collection", "requirements")
    if not collection:
        raise ValueError("Missing 'index.collection' in rag config")

    chroma_raw = raw.get("chroma") or {}
    database_url = raw.get("database_url", "")
    if backend == IndexBackend.PGVECTOR and not database_url:
        raise ValueError("Missing 'index.database_url' for the pgvector backend")

    return IndexConfig(
        backend=backend,
        collection=collection,
        chroma=ChromaConfig(
            host=chroma_raw.get("host", "localhost"),
            port=int(chroma_raw.get("port", 8000)),
            ssl=_as_bool(chroma_raw.get("ssl", False)),
        ),
        database_url=database_url,
    )


def _parse_embedding_config(raw: dict[str, Any]) -> AbstractEmbeddingConfig:
    if "provider" not in raw:
        raise ValueError("Missing 'embedding.provider' in rag config")

    provider_key = raw["provider"]
    provider_type = EmbeddingProviderType(provider_key)

    model = raw.get("model", "")
    if not model:
        raise ValueError("Missing 'embedding.model' in rag config")

    provider_raw = raw.get(provider_key) or {}

    match provider_type:
        case EmbeddingProviderType.OPENAI:
            return OpenAIEmbeddingConfig.from_yaml(provider_raw, model)
        case EmbeddingProviderType.BEDROCK:
            return BedrockEmbeddingConfig.from_yaml(provider_raw, model)
        case EmbeddingProviderType.VERTEX:
            return VertexEmbeddingConfig.from_yaml(provider_raw, model)


def _as_bool(value: Any) -> bool:
    # Values substituted from $(VAR) placeholders arrive as strings
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)
