"""
Structured logging via structlog.

In development: coloured console output.
In production:  JSON lines for any log aggregator.

Every event carries the request correlation id when one is set, and events
emitted while a job runs carry its job_id and session_id (see job_context).
"""

from __future__ import annotations

import logging
import sys
from contextlib import AbstractContextManager

import structlog
from asgi_correlation_id import correlation_id

from voice_emulator.core.config import get_settings

_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "langgraph", "langchain_google_genai")


def add_correlation_id(
    logger: logging.Logger, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    request_id = correlation_id.get()
    if request_id and "request_id" not in event_dict:
        event_dict["request_id"] = request_id
    return event_dict


def job_context(job_id: str, session_id: str) -> AbstractContextManager:
    """Bind job identifiers to every log event emitted inside the block, child tasks included."""
    return structlog.contextvars.bound_contextvars(job_id=job_id, session_id=session_id)


def setup_logging() -> None:
    settings = get_settings()
    is_prod = settings.app_env == "production"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        add_correlation_id,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if is_prod:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(settings.log_level.upper())

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
