"""Structured logging for the indexer, built on structlog over stdlib logging.

While an event is applied the dispatcher binds ``event_id`` and ``event_type``
into structlog's contextvars. Every line a handler emits for that event picks
them up, and ``pin_event_context`` moves them directly after the event name so
lines for one event read the same in console and JSON output.
"""

import logging
from typing import Literal

import structlog
from structlog.types import EventDict, WrappedLogger

EVENT_CONTEXT_KEYS = ("event_id", "event_type")

# libraries that log every statement or request at DEBUG/INFO
_NOISY_LOGGERS = ("aiosqlite", "uvicorn.access")


def pin_event_context(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
    """Reorder ``event_dict`` so the event name and indexer event context lead."""
    pinned = {key: event_dict.pop(key) for key in ("event", *EVENT_CONTEXT_KEYS) if key in event_dict}
    pinned.update(event_dict)
    return pinned


def setup_logging(
    log_level: str = "INFO",
    log_format: Literal["console", "json"] = "console",
) -> None:
    """Route structlog and stdlib records through one root handler.

    Args:
        log_level: Root level name, e.g. "INFO". Unknown names fall back to INFO.
        log_format: "console" for development, "json" for machine-readable output.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        pin_event_context,
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(sort_keys=False)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger with the given name."""
    return structlog.get_logger(name)
