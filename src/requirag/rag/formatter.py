from collections.abc import Sequence

from requirag.rag.types import SearchResult

NO_CONTEXT = "No relevant context found."
NO_SOURCE_DOCUMENTS = "No documents found for this source."

_SECTION_SEPARATOR = "\n\n---\n\n"


def format_context(results: Sequence[SearchResult]) -> str:
    """Render ranked results as one markdown section per source.

    Sections follow the order in which each source first appears in
    *results*; inside a section chunks are put back in document order.
    """
    if not results:
        return NO_CONTEXT

    groups: dict[str, list[SearchResult]] = {}
    for result in results:
        groups.setdefault(result.metadata.source, []).append(result)

    sections: list[str] = []
    for source, group in groups.items():
        metadata = group[0].metadata
        header = f"### {metadata.source_kind.upper()}: {metadata.title or source}"
        if metadata.url:
            header += f"\n**URL**: {metadata.url}"
        if metadata.issue_key:
            header += f"\n**Issue**: {metadata.issue_key}"

        ordered = sorted(group, key=lambda r: r.metadata.chunk_index or 0)
        body = "\n\n".join(r.text for r in ordered)
        sections.append(f"{header}\n\n{body}")

    return _SECTION_SEPARATOR.join(sections)
