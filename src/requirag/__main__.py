import asyncio
import sys
from typing import NoReturn

import structlog

from requirag.rag.config import RagConfig, SourcesConfig, load_rag_config
from requirag.rag.service import RetrievalService, create_service
from requirag.rag.types import SourceKind
from requirag.util.logging import configure_logging

_logger = structlog.get_logger()

_VALID_SOURCES = tuple(kind.value for kind in SourceKind)

_USAGE = (
    "Usage:\n"
    f"  python -m requirag index [--clear] [--source {{{','.join(_VALID_SOURCES)}}}]\n"
    "  python -m requirag search QUERY [--limit N] [--min-score X] [--expand]"
    f" [--source {{{','.join(_VALID_SOURCES)}}}]\n"
    "  python -m requirag count"
)


def main() -> None:
    args = sys.argv[1:]

    if not args or args[0] not in ("index", "search", "count"):
        _exit_with(_USAGE)

    config = load_rag_config()
    configure_logging(json_output=config.logging.json_output, log_level=config.logging.level)
    service = create_service(config)

    match args[0]:
        case "index":
            asyncio.run(_index(service, config, args[1:]))
        case "search":
            asyncio.run(_search(service, args[1:]))
        case "count":
            asyncio.run(_count(service))


async def _index(service: RetrievalService, config: RagConfig, args: list[str]) -> None:
    await service.initialize()

    if "--clear" in args:
        _logger.info("clearing_documents")
        await service.clear_documents()

    sources = config.sources
    source = _option(args, "--source")
    if source is not None:
        kind = _source_kind(source)
        _logger.info("indexing_source", source=kind.value)
        sources = _only(sources, kind)
    else:
        _logger.info("indexing_all_sources")

    total = await service.index_documents(sources)
    print(f"Indexed {total} chunks")


async def _search(service: RetrievalService, args: list[str]) -> None:
    if not args or args[0].startswith("--"):
        _exit_with("search requires a QUERY")

    query = args[0]
    limit = _option(args, "--limit")
    min_score = _option(args, "--min-score")
    source = _option(args, "--source")

    try:
        parsed_limit = int(limit) if limit is not None else None
        parsed_min_score = float(min_score) if min_score is not None else None
    except ValueError as exc:
        _exit_with(f"Invalid option: {exc}")

    context = await service.fetch(
        query,
        limit=parsed_limit,
        min_score=parsed_min_score,
        source_kinds=[_source_kind(source)] if source is not None else None,
        expand_query="--expand" in args,
    )

    print(context.formatted_context)
    if context.citations:
        print("\nSources:")
        for citation in context.citations:
            label = citation.title or citation.source
            print(f"  [{citation.source_kind}] {label} ({citation.score:.2f}) {citation.url or ''}")


async def _count(service: RetrievalService) -> None:
    print(await service.document_count())


def _option(args: list[str], name: str) -> str | None:
    if name not in args:
        return None
    idx = args.index(name)
    if idx + 1 >= len(args):
        _exit_with(f"{name} requires a value")
    return args[idx + 1]


def _source_kind(value: str) -> SourceKind:
    if value not in _VALID_SOURCES:
        _exit_with(f"Invalid source: {value}. Must be one of: {', '.join(_VALID_SOURCES)}")
    return SourceKind(value)


def _only(sources: SourcesConfig, kind: SourceKind) -> SourcesConfig:
    return SourcesConfig(**{kind.value: getattr(sources, kind.value)})


def _exit_with(message: str) -> NoReturn:
    print(message)
    sys.exit(1)


if __name__ == "__main__":
    main()
