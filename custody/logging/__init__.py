"""
Logging Module
==============

Structured logging using structlog with JSON output for production
and colored console output for development.

Usage:
    from custody.logging import get_logger, setup_logging

    setup_logging()
    logger = get_logger(__name__)

    logger.info("evidence_registered", evidence_id="EV-1", uploader="0xabc")
    logger.warning("custody_log_dropped", evidence_id="EV-1", error=str(e))
"""

from custody.logging.logger import REDACTED, get_logger, redact_credentials, setup_logging


__all__ = [
    "REDACTED",
    "get_logger",
    "redact_credentials",
    "setup_logging",
]
