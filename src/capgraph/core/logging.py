"""
Structured logging for capgraph.

Every module logs through structlog with an event name plus key/value
context::

    import structlog
    logger = structlog.get_logger()

    logger.bind(subject_code="PER_1").debug("capabilities_resolved", count=4)

The library itself never touches logging configuration on import.  The CLI
calls ``configure_logging()`` from its root group; embedding applications
either do the same or bring their own structlog setup.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog

# Name given to the root handler installed here, so reconfiguration can find it.
HANDLER_NAME = "capgraph"

# Third-party loggers that stay at WARNING regardless of the requested level.
QUIET_LOGGERS = ("markdown_it",)


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(json_output: bool, stream: TextIO) -> structlog.types.Processor:
    if json_output:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=stream.isatty())


def _build_handler(
    stream: TextIO,
    json_output: bool,
    pre_chain: list[structlog.types.Processor],
) -> logging.Handler:
    """A stream handler whose formatter renders both structlog and stdlib records."""
    handler = logging.StreamHandler(stream)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(json_output, stream),
            ],
            foreign_pre_chain=pre_chain,
        )
    )
    return handler


def configure_logging(
    *,
    level: str = "INFO",
    json_output: bool = False,
    stream: TextIO | None = None,
) -> None:
    """
    Route structlog and stdlib logging through one root handler.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR).  Unknown names
               fall back to INFO.
        json_output: Emit one JSON object per line instead of the console
                     renderer.
        stream: Destination; defaults to the current ``sys.stderr``.

    Repeated calls swap out the handler installed by the previous call, so
    the level, format and stream always follow the latest call.  Handlers
    added by anyone else are left alone.
    """
    target = stream if stream is not None else sys.stderr
    shared = _shared_processors()

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == HANDLER_NAME]:
        root.removeHandler(existing)
    root.addHandler(_build_handler(target, json_output, shared))
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
