"""structlog-backed logging for the cache and its CLI.

Library modules log through ``logging.getLogger(__name__)`` and never
configure handlers themselves. An application calls :func:`setup_logging`
once; stdlib records are then rendered by structlog, as JSON lines when
stderr is not a terminal (or ``json_logs`` is set) and as colored console
output otherwise.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any, Optional

import structlog

if TYPE_CHECKING:
    from crawl_cache.core.config import ObservabilityConfig

PACKAGE_LOGGER = "crawl_cache"


def _shared_processors() -> list[Any]:
    # merge_contextvars first so bound fields reach stdlib records too
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]


def _select_renderer(json_logs: Optional[bool]) -> Any:
    if json_logs is None:
        json_logs = not sys.stderr.isatty()
    if json_logs:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(config: ObservabilityConfig) -> None:
    """Install a single structlog-formatted stderr handler on the root logger."""
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    shared = _shared_processors()

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _select_renderer(config.json_logs),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    logging.getLogger(PACKAGE_LOGGER).setLevel(level)
    # asyncio stays at INFO or above
    logging.getLogger("asyncio").setLevel(max(level, logging.INFO))


def bind_log_context(**fields: Any) -> None:
    """Attach ``fields`` to every log line emitted from the current context."""
    structlog.contextvars.bind_contextvars(**fields)
