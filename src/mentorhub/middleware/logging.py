"""Structured logging: structlog events and stdlib service loggers share one renderer.

Service modules log through ``logging.getLogger(__name__)``. Their records are
rendered by structlog's ``ProcessorFormatter`` with the same processors as
structlog events, so both carry the request context bound per request
(``request_id``, ``method``, ``path``) and by the auth dependencies (``user_id``).
"""

import logging

import structlog
from structlog.types import EventDict, Processor

from mentorhub.config import Settings

HANDLER_NAME = "mentorhub"

# Libraries that log every statement or connection at INFO
_QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "httpx")

_SHARED_PROCESSORS: list[Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
]


def setup_logging(settings: Settings) -> None:
    """Configure structlog and install the shared root handler (idempotent)."""
    renderer: Processor = (
        structlog.processors.JSONRenderer() if settings.log_format == "json" else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info if settings.log_format == "json" else _passthrough,
            renderer,
        ],
    )
    handler = logging.StreamHandler()
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == HANDLER_NAME:
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _passthrough(
    _logger: object, _method: str, event_dict: EventDict
) -> EventDict:
    # ConsoleRenderer formats exc_info itself
    return event_dict
