import asyncio
import json
from typing import Any

import boto3  # type: ignore[import-untyped]
import structlog

from requirag.embedding.config import BedrockEmbeddingConfig
from requirag.embedding.provider import AbstractEmbeddingProvider

_logger = structlog.get_logger()

_COHERE_MAX_BATCH_SIZE = 96


class BedrockEmbeddingProvider(AbstractEmbeddingProvider):
    """Bedrock embeddings for Titan (one text per call) and Cohere (batched) models.

    boto3 is blocking, so every invocation runs in a worker thread.
    """

    config: BedrockEmbeddingConfig

    def __init__(self, config: BedrockEmbeddingConfig) -> None:
        super().__init__(config)
        self._client = boto3.client(
            "bedrock-runtime",
            region_name=config.region,
        )

    @property
    def _is_cohere(self) -> bool:
        return self.config.model.startswith("cohere.")

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return await self._embed(texts, input_type="search_document")

    async def embed_query(self, text: str) -> list[float]:
        return (await self._embed([text], input_type="search_query"))[0]

    async def _embed(self, texts: list[str], input_type: str) -> list[list[float]]:
        if not texts:
            return []

        all_embeddings: list[list[float]] = []

        if self._is_cohere:
            for i in range(0, len(texts), _COHERE_MAX_BATCH_SIZE):
                batch = texts[i : i + _COHERE_MAX_BATCH_SIZE]
                _logger.debug(
                    "embedding_batch", provider="bedrock", batch_size=len(batch), offset=i
                )
                body = await self._invoke({"texts": batch, "input_type": input_type})
                all_embeddings.extend(body["embeddings"])
            return all_embeddings

        for text in texts:
            body = await self._invoke({"inputText": text})
            all_embeddings.append(body["embedding"])
        return all_embeddings

    async def _invoke(self, request_body: dict[str, Any]) -> dict[str, Any]:
        response = await asyncio.to_thread(
            self._client.invoke_model,
            modelId=self.config.model,
            body=json.dumps(request_body),
        )
        result: dict[str, Any] = json.loads(response["body"].read())
        return result
