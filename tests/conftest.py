import string

import pytest

from requirag.embedding.config import OpenAIEmbeddingConfig
from requirag.embedding.provider import AbstractEmbeddingProvider


class LetterCountEmbeddingProvider(AbstractEmbeddingProvider):
    """Deterministic embeddings: letter frequencies plus a constant component.

    Every vector is non-negative, so cosine similarities fall in [0, 1].
    """

    def __init__(self) -> None:
        super().__init__(OpenAIEmbeddingConfig(model="letter-count", api_key="unused"))
        self.calls: list[list[str]] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self._vector(text) for text in texts]

    @staticmethod
    def _vector(text: str) -> list[float]:
        lowered = text.lower()
        return [1.0] + [float(lowered.count(letter)) for letter in string.ascii_lowercase]


@pytest.fixture
def embedding_provider() -> LetterCountEmbeddingProvider:
    return LetterCountEmbeddingProvider()
