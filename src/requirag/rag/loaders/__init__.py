from abc import ABC, abstractmethod
from typing import Any

from requirag.rag.chunker import Chunker
from requirag.rag.types import Chunk


class AbstractLoader(ABC):
    """Base class for loaders that turn one kind of source into chunks.

    A loader skips (and logs) items it cannot fetch or parse; only the items
    that loaded successfully are returned.
    """

    def __init__(
        self,
        source_config: Any,
        tool_config: dict[str, Any],
        chunker: Chunker,
    ) -> None:
        self._source_config = source_config
        self._tool_config = tool_config
        self._chunker = chunker

    @abstractmethod
    def load(self) -> list[Chunk]:
        """Fetch the configured items and return their chunks."""
        ...
