"""Structured Logging Configuration with structlog"""

import logging
import sys
from typing import Any, Dict
import structlog
from structlog.types import EventDict, Processor
from app.core.config import settings


SENSITIVE_KEYS = {
    'password', 'token', 'api_key', 'apikey', 'secret', 'authorization',
    'access_token', 'refresh_token', 'bearer', 'client_secret',
    'header_value',
}

REDACTED = "***REDACTED***"


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add application context to all log entries.

    Args:
        logger: Logger instance
        method_name: Method name being called
        event_dict: Event dictionary

    Returns:
        Modified event dictionary with app context
    """
    event_dict["app"] = "action_engine"
    event_dict["version"] = settings.APP_VERSION
    event_dict["environment"] = settings.ENVIRONMENT
    return event_dict


def _is_sensitive(key: str) -> bool:
    key_lower = key.lower().replace("-", "_")
    return any(sensitive in key_lower for sensitive in SENSITIVE_KEYS)


def censor_dict(d: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively censor sensitive keys in a dictionary"""
    censored = {}
    for key, value in d.items():
        if isinstance(key, str) and key != "event" and _is_sensitive(key):
            censored[key] = REDACTED
        elif isinstance(value, dict):
            censored[key] = censor_dict(value)
        elif isinstance(value, list):
            censored[key] = [
                censor_dict(item) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            censored[key] = value
    return censored


def censor_sensitive_data(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Censor sensitive data in log entries.

    Redacts tokens, API keys, client secrets and Authorization headers,
    including when they are nested inside header or credential mappings.
    """
    return censor_dict(event_dict)


def configure_structlog() -> None:
    """
    Configure structlog for structured logging.

    Sets up processors, formatters, and output configuration.
    """
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_app_context,
        censor_sensitive_data,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    # Human-readable output for development, JSON everywhere else
    if settings.DEBUG or settings.ENVIRONMENT == "development" or settings.LOG_FORMAT == "text":
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger

    Usage:
        logger = get_logger(__name__)
        logger.info("action_execution_started", execution_id=execution_id, org_id=org_id)
    """
    return structlog.get_logger(name)


# Configure structlog on module import
configure_structlog()


__all__ = [
    'configure_structlog',
    'censor_dict',
    'get_logger',
]
