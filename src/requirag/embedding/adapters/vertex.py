import structlog
import vertexai
from vertexai.language_models import TextEmbeddingInput, TextEmbeddingModel

from requirag.embedding.config import VertexEmbeddingConfig
from requirag.embedding.provider import AbstractEmbeddingProvider

_logger = structlog.get_logger()

_MAX_BATCH_SIZE = 250


class VertexEmbeddingProvider(AbstractEmbeddingProvider):
    config: VertexEmbeddingConfig

    def __init__(self, config: VertexEmbeddingConfig) -> None:
        super().__init__(config)
        vertexai.init(
            project=config.project_id,
            location=config.location,
        )
        self._model = TextEmbeddingModel.from_pretrained(config.model)

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return await self._embed(texts, task_type="RETRIEVAL_DOCUMENT")

    async def embed_query(self, text: str) -> list[float]:
        return (await self._embed([text], task_type="RETRIEVAL_QUERY"))[0]

    async def _embed(self, texts: list[str], task_type: str) -> list[list[float]]:
        if not texts:
            return []

        all_embeddings: list[list[float]] = []

        for i in range(0, len(texts), _MAX_BATCH_SIZE):
            batch = texts[i : i + _MAX_BATCH_SIZE]
            _logger.debug("embedding_batch", provider="vertex", batch_size=len(batch), offset=i)

            inputs: list[str | TextEmbeddingInput] = [
                TextEmbeddingInput(text=t, task_type=task_type) for t in batch
            ]
            embeddings = await self._model.get_embeddings_async(inputs)
            all_embeddings.extend(e.values for e in embeddings)

        return all_embeddings
