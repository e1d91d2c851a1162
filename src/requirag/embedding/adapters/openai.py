import structlog
from openai import AsyncOpenAI

from requirag.embedding.config import OpenAIEmbeddingConfig
from requirag.embedding.provider import AbstractEmbeddingProvider

_logger = structlog.get_logger()

_MAX_BATCH_SIZE = 500  # stays under the per-request token limit for ~1000-char chunks


class OpenAIEmbeddingProvider(AbstractEmbeddingProvider):
    config: OpenAIEmbeddingConfig

    def __init__(self, config: OpenAIEmbeddingConfig) -> None:
        super().__init__(config)
        self._client = AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.api_url,
        )

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        all_embeddings: list[list[float]] = []

        for i in range(0, len(texts), _MAX_BATCH_SIZE):
            batch = texts[i : i + _MAX_BATCH_SIZE]
            _logger.debug("embedding_batch", provider="openai", batch_size=len(batch), offset=i)

            response = await self._client.embeddings.create(
                model=self.config.model,
                input=batch,
            )
            ordered = sorted(response.data, key=lambda item: item.index)
            all_embeddings.extend(item.embedding for item in ordered)

        return all_embeddings
