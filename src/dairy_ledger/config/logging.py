"""structlog setup for the back office.

Events go to stderr so CLI output on stdout stays clean for piping. Ledgers
log snake_case event names with bound ``component`` context, e.g.
``approval_completed component=approval_workflow approved=2``.
"""

import logging
import sys
from typing import Literal

import structlog

from dairy_ledger.config.settings import get_settings

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]

# Applied to every event before rendering.
PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
]


def _renderer(log_format: LogFormat) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=sys.stderr.isatty(),
        exception_formatter=structlog.dev.plain_traceback,
    )


def configure_logging(level: LogLevel | None = None, format: LogFormat | None = None) -> None:
    """Route structlog through stdlib logging at ``level`` in ``format``.

    Both default to ``LOG_LEVEL`` / ``LOG_FORMAT`` from the settings.
    """
    settings = get_settings()
    log_level = level or settings.log_level

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=getattr(logging, log_level))
    structlog.configure(
        processors=[*PROCESSORS, _renderer(format or settings.log_format)],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
