import html
import re
from typing import Any

import structlog

from requirag.rag.chunker import Chunker
from requirag.rag.config import ConfluenceSourceConfig
from requirag.rag.loaders import AbstractLoader
from requirag.rag.types import Chunk, SourceKind

_logger = structlog.get_logger()

_PAGE_ID_PATTERN = re.compile(r"pageId=(\d+)")


class ConfluenceLoader(AbstractLoader):
    """Load Confluence pages by id or by ``viewpage.action?pageId=`` URL."""

    def __init__(
        self,
        source_config: ConfluenceSourceConfig,
        tool_config: dict[str, Any],
        chunker: Chunker,
    ) -> None:
        super().__init__(source_config, tool_config, chunker)
        self._source_config: ConfluenceSourceConfig = source_config

    def load(self) -> list[Chunk]:
        from atlassian import Confluence

        cfg = self._tool_config.get("confluence", {})
        url = cfg.get("url", "")
        username = cfg.get("username", "")
        api_token = cfg.get("api_token", "")

        if not all([url, username, api_token]):
            _logger.warning("confluence_skipped", reason="missing config")
            return []

        client = Confluence(
            url=url,
            username=username,
            password=api_token,
            cloud=cfg.get("cloud", True),
        )
        base_url = url.rstrip("/")

        page_ids = list(self._source_config.page_ids)
        for page_url in self._source_config.urls:
            page_id = page_id_from_url(page_url)
            if page_id is None:
                _logger.warning("confluence_url_skipped", url=page_url, reason="no pageId")
                continue
            if page_id not in page_ids:
                page_ids.append(page_id)

        chunks: list[Chunk] = []
        for page_id in page_ids:
            try:
                page = client.get_page_by_id(page_id, expand="body.storage,version")
            except Exception:
                # atlassian-python-api raises HTTPError and its own ApiError subclasses
                _logger.warning("confluence_page_skipped", page_id=page_id, exc_info=True)
                continue

            title = page.get("title") or page_id
            body_text = html_to_text(page.get("body", {}).get("storage", {}).get("value", ""))
            if not body_text:
                _logger.debug("confluence_page_empty", page_id=page_id)
                continue

            page_chunks = self._chunker.chunk_document(
                text=f"Page: {title}\n\n{body_text}",
                source=page_id,
                source_kind=SourceKind.CONFLUENCE,
                title=title,
                url=f"{base_url}/pages/viewpage.action?pageId={page_id}",
                extra={"page_id": page_id, "version": page.get("version", {}).get("number")},
            )
            chunks.extend(page_chunks)
            _logger.debug("confluence_page_loaded", page_id=page_id, chunks=len(page_chunks))

        _logger.info("confluence_indexed", pages=len(page_ids), chunks=len(chunks))
        return chunks


def page_id_from_url(url: str) -> str | None:
    match = _PAGE_ID_PATTERN.search(url)
    return match.group(1) if match else None


def html_to_text(markup: str) -> str:
    """Strip HTML tags to produce readable plain text."""
    text = re.sub(r"<br\s*/?>", "\n", markup)
    text = re.sub(r"</(p|div|h[1-6]|li|tr)>", "\n", text)
    text = re.sub(r"<[^>]+>", "", text)
    text = html.unescape(text).replace("\xa0", " ")
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()
