from requirag.embedding.config import (
    AbstractEmbeddingConfig,
    BedrockEmbeddingConfig,
    EmbeddingProviderType,
    OpenAIEmbeddingConfig,
    VertexEmbeddingConfig,
)
from requirag.embedding.provider import AbstractEmbeddingProvider


def create_embedding_provider(config: AbstractEmbeddingConfig) -> AbstractEmbeddingProvider:
    # Adapters pull in their vendor SDKs, so only the configured one is imported
    match config:
        case OpenAIEmbeddingConfig():
            from requirag.embedding.adapters.openai import OpenAIEmbeddingProvider

            return OpenAIEmbeddingProvider(config)
        case BedrockEmbeddingConfig():
            from requirag.embedding.adapters.bedrock import BedrockEmbeddingProvider

            return BedrockEmbeddingProvider(config)
        case VertexEmbeddingConfig():
            from requirag.embedding.adapters.vertex import VertexEmbeddingProvider

            return VertexEmbeddingProvider(config)
        case _:
            raise ValueError(f"Unknown embedding config: {type(config).__name__}")


__all__ = [
    "AbstractEmbeddingConfig",
    "AbstractEmbeddingProvider",
    "BedrockEmbeddingConfig",
    "EmbeddingProviderType",
    "OpenAIEmbeddingConfig",
    "VertexEmbeddingConfig",
    "create_embedding_provider",
]
