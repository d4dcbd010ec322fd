"""structlog setup shared by the API and the sweep worker.

Every event carries the component (``api`` or ``sweep-worker``), the
environment and the app version. Tip amounts are ``Decimal`` and are logged
as plain strings so JSON output stays readable.
"""

import logging
from decimal import Decimal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from solmate.config import Settings

# Libraries that log per statement or per job at INFO
_QUIET_LOGGERS = ("sqlalchemy.engine", "httpx", "arq.worker")


def _app_context(settings: Settings, component: str) -> Processor:
    static = {"component": component, "environment": settings.environment, "version": settings.app_version}

    def add_app_context(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
        for key, value in static.items():
            event_dict.setdefault(key, value)
        return event_dict

    return add_app_context


def stringify_decimals(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
    """Render Decimal values as '5.00' rather than "Decimal('5.00')"."""
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = str(value)
    return event_dict


def setup_logging(settings: Settings, *, component: str = "api") -> None:
    """Configure structlog for JSON or console output."""
    renderer: Processor = (
        structlog.processors.JSONRenderer() if settings.log_format == "json" else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _app_context(settings, component),
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            stringify_decimals,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        # Debug keeps loggers reconfigurable (structlog.testing.capture_logs)
        cache_logger_on_first_use=not settings.debug,
    )

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
