"""Structured logging configuration using structlog.

All modules log through ``get_logger(__name__)`` with snake_case event names
and keyword context. Events go through the stdlib ``logging`` tree so that the
optional log file receives the same events as the console, always as JSON.
"""

import logging
import sys
from contextlib import AbstractContextManager
from pathlib import Path

import structlog
from structlog.types import Processor

# Clients whose per-request chatter duplicates our own fetch_attempt events
NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "urllib3", "postgrest", "openai", "groq")


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _formatter(renderer: Processor) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def setup_logging(
    level: str = "INFO",
    log_format: str = "console",
    log_file: str | None = None,
) -> None:
    """Configure structured logging for the application.

    Safe to call more than once; handlers are replaced, not stacked.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_format: Output format ("console" for pretty, "json" for structured)
        log_file: Optional file path for JSON log lines
    """
    numeric_level = getattr(logging, level.upper())

    if log_format == "json":
        console_renderer: Processor = structlog.processors.JSONRenderer()
    else:
        console_renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(_formatter(console_renderer))
    handlers: list[logging.Handler] = [stream_handler]

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(
            _formatter(structlog.processors.JSONRenderer(ensure_ascii=False))
        )
        handlers.append(file_handler)

    logging.basicConfig(level=numeric_level, handlers=handlers, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)
    """
    return structlog.get_logger(name)


class LogContext:
    """Bind context keys for the duration of a block.

    Values bound by an enclosing context are restored on exit, so nested
    contexts (run, then source) do not clobber each other.
    """

    def __init__(self, **kwargs: str | int | float | bool | None) -> None:
        self.context = kwargs
        self._bound: AbstractContextManager | None = None

    def __enter__(self) -> "LogContext":
        self._bound = structlog.contextvars.bound_contextvars(**self.context)
        self._bound.__enter__()
        return self

    def __exit__(self, *exc: object) -> None:
        if self._bound is not None:
            self._bound.__exit__(*exc)
            self._bound = None


def log_source_run(run_id: str, source_id: str, source_name: str) -> LogContext:
    """Context manager binding run and source identity for one source pass."""
    return LogContext(run_id=run_id, source_id=source_id, source_name=source_name)
