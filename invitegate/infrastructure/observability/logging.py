"""
Structured logging setup for the invitation security layer.
Provides JSON-formatted logs with consistent fields for security monitoring.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory

TOKEN_LOG_PREFIX_LENGTH = 8


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _redact_tokens,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def _redact_tokens(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Never let a full CSRF/bearer token reach the log sink."""
    for key in ("token", "csrf_token", "provided_token", "authorization"):
        value = event_dict.get(key)
        if isinstance(value, str):
            event_dict[key] = redact_token(value)
    return event_dict


def redact_token(token: str | None) -> str | None:
    """Keep only a short prefix of a secret for correlation."""
    if not token:
        return token
    return token[:TOKEN_LOG_PREFIX_LENGTH] + "..."


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def log_security_event(event: str, message: str, **fields: Any) -> None:
    """Log a rejected request with consistent fields."""
    logger = get_logger("security")
    logger.warning(message, security_event=event, **fields)
