"""Structured logging setup with structlog."""

import logging
import sys
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import structlog
from rich.console import Console
from rich.logging import RichHandler


def configure_logging(
    level: str = "INFO",
    format_type: str = "console",
    log_file: Path | None = None
) -> None:
    """Configure structured logging for topoprint.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: "console" for an interactive terminal, "json" for the API server
        log_file: Optional file path that receives a copy of every record
    """
    log_level = getattr(logging, level.upper())

    logging.basicConfig(level=log_level, format="%(message)s", handlers=[])

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if format_type == "console":
        renderer = structlog.dev.ConsoleRenderer(colors=True)
        # structlog adds its own timestamp
        handler: logging.Handler = RichHandler(
            console=Console(stderr=True), show_time=False, show_path=False
        )
    else:
        renderer = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.dict_tracebacks)
        handler = logging.StreamHandler(sys.stdout)

    handler.setLevel(log_level)
    logging.root.addHandler(handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        logging.root.addHandler(file_handler)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)
    """
    return structlog.get_logger(name)


@contextmanager
def generation_context(**values) -> Iterator[str]:
    """Bind a generation id (plus any extra values) to every log record in scope.

    Yields:
        The generation id that was bound
    """
    generation_id = uuid.uuid4().hex[:12]
    with structlog.contextvars.bound_contextvars(generation_id=generation_id, **values):
        yield generation_id
