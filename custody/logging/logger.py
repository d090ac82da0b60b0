"""
Logger Implementation
=====================

structlog configuration for the custody engine and its service.

Every event carries the service name and an ISO timestamp. Credentials
(bearer tokens, JWT secrets, database passwords) are redacted before
rendering; content hashes and wallet addresses are public and kept.

Version: 0.1.0
"""

import logging
import sys
from typing import TYPE_CHECKING

import structlog
from structlog.types import EventDict, Processor, WrappedLogger


if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger


REDACTED = "***REDACTED***"

_CREDENTIAL_MARKERS = ("password", "secret", "token", "authorization", "private_key")

# Library loggers that are chatty at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "sqlalchemy.engine", "aiosqlite", "uvicorn.access")


def _is_credential(key: str) -> bool:
    key = key.lower()
    return any(marker in key for marker in _CREDENTIAL_MARKERS)


def redact_credentials(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Replace credential values, including inside nested ``details`` dicts."""

    def scrub(values: dict) -> dict:
        return {
            key: REDACTED if _is_credential(key) else scrub(value) if isinstance(value, dict) else value
            for key, value in values.items()
        }

    return scrub(event_dict)


def _service_processor(service_name: str) -> Processor:
    def add_service(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", service_name)
        return event_dict

    return add_service


def setup_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    service_name: str = "custody",
) -> None:
    """
    Configure structlog and route stdlib logging through it.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: JSON lines (production) instead of the console renderer
        service_name: Value of the ``service`` key on every event
    """
    level = getattr(logging, log_level.upper())

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _service_processor(service_name),
        redact_credentials,
        structlog.processors.StackInfoRenderer(),
    ]

    if json_logs:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
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
    root_logger.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str | None = None) -> "BoundLogger":
    """
    Get a structured logger.

    Example:
        logger = get_logger(__name__)
        logger.info("custody_transferred", evidence_id="EV-1", new_holder="0xabc")
    """
    return structlog.stdlib.get_logger(name)
