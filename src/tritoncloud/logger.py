"""Structured logging for tritoncloud.

Library modules obtain a logger with ``get_logger(__name__)``. Events go through
the stdlib ``logging`` machinery, so nothing is emitted until a handler is
installed (the CLI does that with ``setup_logging``).
"""

import logging
import os
import sys
from typing import Optional

import structlog

logging.getLogger("tritoncloud").addHandler(logging.NullHandler())

_SHARED_PROCESSORS = [
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
]


def _configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to ``name``."""
    if not structlog.is_configured():
        _configure_structlog()
    return structlog.get_logger(name)


def setup_logging(level: Optional[str] = None, json_logs: bool = False) -> None:
    """
    Send tritoncloud logs to stderr.

    :param level: Logging level name. Falls back to ``TRITON_LOG_LEVEL``, then WARNING.
    :param json_logs: Render events as JSON lines instead of the console format.
    """
    level = level or os.environ.get("TRITON_LOG_LEVEL", "WARNING")

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=_SHARED_PROCESSORS,
        )
    )

    root = logging.getLogger("tritoncloud")
    root.handlers = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.WARNING))
    root.propagate = False

    _configure_structlog()
