from pathlib import Path
from typing import Any

import structlog

from requirag.rag.chunker import Chunker
from requirag.rag.config import LocalSourceConfig
from requirag.rag.loaders import AbstractLoader
from requirag.rag.types import Chunk, SourceKind
from requirag.util import PROJECT_ROOT

_logger = structlog.get_logger()

_TEXT_SUFFIXES = (".md", ".markdown", ".txt")


class LocalFileLoader(AbstractLoader):
    """Load markdown, text and PDF files from the local file system."""

    def __init__(
        self,
        source_config: LocalSourceConfig,
        tool_config: dict[str, Any],
        chunker: Chunker,
    ) -> None:
        super().__init__(source_config, tool_config, chunker)
        self._source_config: LocalSourceConfig = source_config

    def load(self) -> list[Chunk]:
        chunks: list[Chunk] = []

        for path_str in self._source_config.files:
            file_path = Path(path_str)
            if not file_path.is_absolute():
                file_path = PROJECT_ROOT / file_path

            if not file_path.is_file():
                _logger.warning("local_file_not_found", path=str(file_path))
                continue

            try:
                text = read_document(file_path)
            except ValueError:
                _logger.warning("local_file_unsupported", path=str(file_path))
                continue
            except Exception:
                # pdfplumber surfaces parser errors from pdfminer with no common base
                _logger.warning("local_file_read_failed", path=str(file_path), exc_info=True)
                continue

            if not text.strip():
                continue

            if file_path.is_relative_to(PROJECT_ROOT):
                relative = file_path.relative_to(PROJECT_ROOT)
            else:
                relative = file_path
            file_chunks = self._chunker.chunk_document(
                text=f"File: {file_path.name}\n\n{text.strip()}",
                source=file_path.name,
                source_kind=SourceKind.LOCAL,
                title=file_path.name,
                extra={"file_path": str(relative)},
            )
            chunks.extend(file_chunks)
            _logger.debug("local_file_loaded", path=str(relative), chunks=len(file_chunks))

        _logger.info("local_indexed", files=len(self._source_config.files), chunks=len(chunks))
        return chunks


def read_document(file_path: Path) -> str:
    suffix = file_path.suffix.lower()
    if suffix in _TEXT_SUFFIXES:
        return file_path.read_text(encoding="utf-8", errors="replace")
    if suffix == ".pdf":
        import pdfplumber

        with pdfplumber.open(file_path) as pdf:
            return "\n\n".join(page.extract_text() or "" for page in pdf.pages)
    raise ValueError(f"Unsupported file type: {file_path.suffix}")
