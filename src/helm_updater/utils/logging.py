"""Structured logging for the Helm updater.

Events are emitted through structlog with snake_case names and key/value
context. ``configure_logging`` is the entry point used by the CLI; it reads
the ``logging`` section of the updater config and lets a command line level
take precedence.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import IO, TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from helm_updater.core.config import LoggingConfig

_SHARED_PROCESSORS: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
]


def _processors(format: str) -> list[Any]:
    if format == "json":
        return [
            *_SHARED_PROCESSORS,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return [*_SHARED_PROCESSORS, structlog.dev.ConsoleRenderer()]


def _stream(output: str) -> IO[str]:
    return sys.stdout if output == "stdout" else sys.stderr


def setup_logging(level: str = "INFO", format: str = "console", output: str = "stderr") -> None:
    """Configure structlog and the standard library root logger.

    Args:
        level: Log level name, case-insensitive; unknown names fall back to INFO
        format: ``json`` for machine-readable lines, anything else renders for a console
        output: ``stdout`` or ``stderr``
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    stream = _stream(output)

    logging.basicConfig(format="%(message)s", stream=stream, level=log_level)

    structlog.configure(
        processors=_processors(format),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )


def configure_logging(config: "LoggingConfig", level: str | None = None) -> None:
    """Configure logging from the updater's logging settings.

    Args:
        config: Logging section of the updater config
        level: Level overriding ``config.level`` when given
    """
    setup_logging(level=level or config.level, format=config.format, output=config.output)


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Structured logger instance
    """
    return structlog.get_logger(name)


@contextmanager
def run_context(**kwargs: Any) -> Iterator[None]:
    """Bind fields to every event logged inside the block, including from other modules."""
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield


def log_stage(logger: structlog.BoundLogger, stage: str, **kwargs: Any) -> None:
    """Log completion of a pipeline stage (scan, extract, resolve, update)."""
    logger.info(f"stage_{stage}_complete", **kwargs)


def log_error(
    logger: structlog.BoundLogger,
    error: Exception,
    operation: str | None = None,
    **kwargs: Any,
) -> None:
    """Log a failed operation with the exception attached.

    The event is named ``<operation>_failed`` when an operation is given and
    ``error_occurred`` otherwise.

    Args:
        logger: Logger instance
        error: Exception that was caught
        operation: Operation name (optional)
        **kwargs: Additional context fields
    """
    event = f"{operation}_failed" if operation else "error_occurred"
    logger.error(
        event,
        error_type=type(error).__name__,
        error_message=str(error),
        **kwargs,
        exc_info=True,
    )
