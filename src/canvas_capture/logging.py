"""
Logging configuration using structlog.

Events go through stdlib logging so third-party libraries share the same
handlers: a console handler on stderr, and optionally JSON lines on disk.
"""

import sys
import logging
from typing import Any, TextIO
from pathlib import Path

import numpy as np
import structlog
from structlog.types import Processor

# Pillow logs every PNG chunk at DEBUG
NOISY_LOGGERS = ("PIL",)


def summarize_pixel_data(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Replace raw pixel arrays in log entries with a short shape summary."""
    for key, value in list(event_dict.items()):
        if isinstance(value, np.ndarray):
            event_dict[key] = f"<ndarray shape={value.shape} dtype={value.dtype}>"
        elif hasattr(value, "pixels") and hasattr(value, "width") and hasattr(value, "height"):
            event_dict[key] = f"<PixelBuffer {value.width}x{value.height}>"
    return event_dict


def _pre_chain() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        summarize_pixel_data,
    ]


def _formatted_handler(
    handler: logging.Handler, renderers: list[Processor], pre_chain: list[Processor]
) -> logging.Handler:
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *renderers,
            ],
            foreign_pre_chain=pre_chain,
        )
    )
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    stream: TextIO | None = None,
) -> None:
    """
    Route structlog and stdlib logging to the console and an optional file.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        log_file: Also write JSON lines here
        stream: Console stream (stderr if omitted)
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    stream = stream or sys.stderr
    pre_chain = _pre_chain()

    structlog.configure(
        processors=pre_chain + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    colors = hasattr(stream, "isatty") and stream.isatty()
    handlers = [
        _formatted_handler(
            logging.StreamHandler(stream),
            [structlog.dev.ConsoleRenderer(colors=colors)],
            pre_chain,
        )
    ]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            _formatted_handler(
                logging.FileHandler(log_file),
                [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()],
                pre_chain,
            )
        )

    root_logger = logging.getLogger()
    root_logger.handlers = handlers
    root_logger.setLevel(numeric_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.INFO))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)
