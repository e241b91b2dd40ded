"""structlog setup for the booking board service.

The kiosk server runs with REVSPORT_LOG_JSON=true and ships one JSON object
per line; local runs get the coloured console renderer. Context bound with
log_context() (the boat being scraped, for instance) is merged into every
event logged inside the block, including events from the session layer.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

# Chatty third-party loggers and the lowest level they may log at
_QUIET_LOGGERS = {
    "urllib3": logging.INFO,
    "uvicorn.access": logging.WARNING,
}


def _shared_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def setup_logging(json_output: bool = False, log_level: str = "INFO") -> None:
    """Configure structlog and send stdlib records (uvicorn, urllib3) to stdout.

    Safe to call more than once; the entry point calls it with defaults
    before the configuration is loaded and again with the loaded settings.

    Args:
        json_output: Render JSON lines instead of the console format.
        log_level: Minimum level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    processors = _shared_processors()
    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.handlers = [logging.StreamHandler(sys.stdout)]
    root.handlers[0].setFormatter(logging.Formatter("%(message)s"))
    root.setLevel(level)
    for name, floor in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(max(level, floor))


@contextmanager
def log_context(**values) -> Iterator[None]:
    """Bind key/value context to every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(**values):
        yield


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger instance bound with the module name.

    Args:
        name: Logger name (typically __name__ from calling module).

    Returns:
        Configured structlog logger with module name context.
    """
    return structlog.get_logger(name)
