from abc import ABC, abstractmethod

from requirag.embedding.config import AbstractEmbeddingConfig


class AbstractEmbeddingProvider(ABC):
    """Turns text into vectors. Implementations must preserve input order."""

    def __init__(self, config: AbstractEmbeddingConfig) -> None:
        self.config = config

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]: ...

    async def embed_query(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]
