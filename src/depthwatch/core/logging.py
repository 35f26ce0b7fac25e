"""
structlog configuration for depthwatch.

Log lines go to stderr (and optionally a file) so stdout stays free for the
rendered book. The market being watched is carried in contextvars, so every
line logged while a market runs has a `market_id` without each call passing it.
"""
import logging
import sys
from typing import Optional

import structlog

_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
]


def _renderer(json_output: bool) -> list[structlog.types.Processor]:
    if json_output:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Route structlog through stdlib logging at `level`.

    Unknown level names fall back to INFO.
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(format="%(message)s", level=log_level, handlers=handlers, force=True)

    structlog.configure(
        processors=_PROCESSORS + _renderer(json_output),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_market(market_id: str) -> None:
    """Tag every following log line in this context with `market_id`."""
    structlog.contextvars.bind_contextvars(market_id=market_id)


def unbind_market() -> None:
    structlog.contextvars.unbind_contextvars("market_id")
