"""Structured logging for ComicGate.

All modules log through structlog with snake_case event names and keyword
fields. Output is JSON in production and a coloured console layout in
development. Standard-library loggers (uvicorn, httpx) are routed through
the same renderer.

Request-scoped values (request id, read key, mirror base) are carried in
structlog's context variables, so nested service calls pick them up
without passing loggers around:

    from comicgate.core.logging import get_logger, log_context

    logger = get_logger(__name__)
    with log_context(read_key="chapter-350000"):
        logger.info("page_materialized", segments=4)
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from comicgate.config import Settings

REQUEST_ID_KEY = "request_id"

# Fields that may carry credentials derived from protocol secrets
SENSITIVE_KEYS = frozenset({"token", "tokenparam", "cookie", "cookies", "password", "secret"})
REDACTED = "***"

QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "hpack", "PIL")


def redact_sensitive(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Mask credential-bearing fields, including inside a ``headers`` dict."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = REDACTED
    headers = event_dict.get("headers")
    if isinstance(headers, dict):
        event_dict["headers"] = {
            k: REDACTED if k.lower() in SENSITIVE_KEYS else v for k, v in headers.items()
        }
    return event_dict


def service_context(settings: Settings) -> Processor:
    """Processor stamping every entry with the service name and version."""

    def add_service(
        logger: WrappedLogger, method_name: str, event_dict: EventDict
    ) -> EventDict:
        event_dict.setdefault("service", "comicgate")
        event_dict.setdefault("service_version", settings.service_version)
        return event_dict

    return add_service


def _renderer(settings: Settings) -> Processor:
    if settings.use_json_logs:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(settings: Settings) -> None:
    """Configure structlog and the standard-library root logger.

    Args:
        settings: Application settings (level, format, version)
    """
    level = getattr(logging, settings.log_level.value, logging.INFO)

    pre_chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        service_context(settings),
        redact_sensitive,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.use_json_logs:
        pre_chain.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(settings),
            ],
            foreign_pre_chain=pre_chain,
        )
    )
    handler.setLevel(level)

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    quiet_level = logging.DEBUG if settings.debug else logging.WARNING
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, typically ``get_logger(__name__)``."""
    return structlog.get_logger(name)


# =============================================================================
# Request context
# =============================================================================


def bind_request_id(request_id: str) -> None:
    """Attach ``request_id`` to every entry logged in the current task."""
    structlog.contextvars.bind_contextvars(**{REQUEST_ID_KEY: request_id})


def get_request_id() -> str | None:
    return structlog.contextvars.get_contextvars().get(REQUEST_ID_KEY)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Bind values to all entries logged inside the block.

    Values bound by an outer block are restored on exit.
    """
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield
