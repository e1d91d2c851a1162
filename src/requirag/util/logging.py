from __future__ import annotations

import logging
import sys

import structlog

_QUIET_LOGGERS = ("chromadb", "httpx", "httpcore", "urllib3", "openai")


def configure_logging(json_output: bool = True, log_level: str = "INFO") -> None:
    """Route structlog through stdlib logging with a JSON or console renderer.

    Calling it again replaces the handler installed by the previous call
    instead of stacking a second one.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    )
    formatter = structlog.stdlib.ProcessorFormatter(processor=renderer)

    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for existing in list(root_logger.handlers):
        if getattr(existing, "_requirag", False):
            root_logger.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler._requirag = True  # type: ignore[attr-defined]
    root_logger.addHandler(handler)

    # Third-party clients log every request at INFO
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
