"""
Structured logging for the Sharepad service.

Application events are rendered by structlog. Records from stdlib loggers
(uvicorn, starlette) are passed through the same processor chain, so a
single stream carries both in one format.
"""

import logging
import sys
from typing import Any

import structlog


def _service_field(service_name: str) -> Any:
    def processor(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict

    return processor


def _shared_processors(service_name: str) -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _service_field(service_name),
    ]


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    service_name: str = "sharepad",
) -> None:
    """
    Configure structlog and route stdlib logging through it.

    Args:
        level: Log level name; unknown names fall back to INFO
        json_output: Render JSON lines (production) instead of console output
        service_name: Value of the `service` field on every entry

    """
    level_no = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)
    shared = _shared_processors(service_name)
    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )

    structlog.configure(
        processors=[*shared, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level_no),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(sys.stdout),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level_no)

    # uvicorn installs its own handlers; let its records reach the root one
    for name in ("uvicorn", "uvicorn.error"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = []
        uvicorn_logger.propagate = True

    # Request lines duplicate the route-level events
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
