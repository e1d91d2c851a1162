from typing import Any

import structlog

from requirag.rag.chunker import Chunker
from requirag.rag.config import JiraSourceConfig
from requirag.rag.loaders import AbstractLoader
from requirag.rag.types import Chunk, SourceKind

_logger = structlog.get_logger()

_SEARCH_FIELDS = "summary,issuetype,status,priority"


class JiraLoader(AbstractLoader):
    """Load Jira issues by key and by JQL search."""

    def __init__(
        self,
        source_config: JiraSourceConfig,
        tool_config: dict[str, Any],
        chunker: Chunker,
    ) -> None:
        super().__init__(source_config, tool_config, chunker)
        self._source_config: JiraSourceConfig = source_config
        self._base_url = ""

    def load(self) -> list[Chunk]:
        from atlassian import Jira

        cfg = self._tool_config.get("jira", {})
        url = cfg.get("url", "")
        username = cfg.get("username", "")
        api_token = cfg.get("api_token", "")

        if not all([url, username, api_token]):
            _logger.warning("jira_skipped", reason="missing config")
            return []

        self._base_url = url.rstrip("/")
        client = Jira(
            url=url,
            username=username,
            password=api_token,
            cloud=cfg.get("cloud", True),
        )

        issue_keys = list(self._source_config.issues)
        if self._source_config.jql:
            found = self._search(client, self._source_config.jql)
            issue_keys.extend(key for key in found if key not in issue_keys)

        chunks: list[Chunk] = []
        for issue_key in issue_keys:
            try:
                issue = client.issue(issue_key)
            except Exception:
                # atlassian-python-api raises HTTPError and its own ApiError subclasses
                _logger.warning("jira_issue_skipped", issue_key=issue_key, exc_info=True)
                continue
            chunks.extend(self._chunk_issue(issue_key, issue))

        _logger.info("jira_indexed", issues=len(issue_keys), chunks=len(chunks))
        return chunks

    def _search(self, client: Any, jql: str) -> list[str]:
        _logger.info("jira_searching", jql=jql)
        try:
            data = client.jql(jql, fields=_SEARCH_FIELDS, limit=self._source_config.max_results)
        except Exception:
            _logger.exception("jira_search_failed", jql=jql)
            return []
        return [issue["key"] for issue in (data or {}).get("issues", [])]

    def _chunk_issue(self, issue_key: str, issue: dict[str, Any]) -> list[Chunk]:
        fields = issue.get("fields") or {}
        summary = fields.get("summary") or ""
        issue_type = _name(fields.get("issuetype"))
        status = _name(fields.get("status"))
        priority = _name(fields.get("priority"))
        description = adf_to_text(fields.get("description"))
        acceptance_criteria = adf_to_text(
            fields.get(self._source_config.acceptance_criteria_field)
        )

        text = (
            f"Issue: {issue_key}\n"
            f"Type: {issue_type}\n"
            f"Status: {status}\n"
            f"Priority: {priority}\n"
            f"Summary: {summary}\n\n"
            f"Description:\n{description}"
        )
        if acceptance_criteria:
            text += f"\n\nAcceptance Criteria:\n{acceptance_criteria}"

        chunks = self._chunker.chunk_document(
            text=text,
            source=issue_key,
            source_kind=SourceKind.JIRA,
            title=summary or issue_key,
            url=f"{self._base_url}/browse/{issue_key}",
            issue_key=issue_key,
            extra={"issue_type": issue_type, "status": status, "priority": priority},
        )
        _logger.debug("jira_issue_loaded", issue_key=issue_key, chunks=len(chunks))
        return chunks


def adf_to_text(value: Any) -> str:
    """Flatten a Jira field to plain text.

    Server/v2 fields are plain strings; Cloud/v3 rich-text fields are Atlassian
    Document Format trees whose ``text`` leaves are joined, one block per line.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, list):
        return "\n".join(filter(None, (adf_to_text(item) for item in value)))
    if isinstance(value, dict):
        if value.get("type") == "text":
            return str(value.get("text", ""))
        children = value.get("content") or []
        separator = "\n" if value.get("type") in ("doc", "bulletList", "orderedList") else ""
        return separator.join(adf_to_text(child) for child in children).strip()
    return str(value)


def _name(value: Any) -> str:
    if isinstance(value, dict):
        return str(value.get("name", ""))
    return ""
