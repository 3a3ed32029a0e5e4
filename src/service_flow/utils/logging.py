"""Structured logging framework using structlog.

This module provides centralized logging configuration with:
- ISO-8601 timestamps
- JSON rendering for structured logs
- Automatic sanitization of sensitive fields
- Context binding support
- Dual output (stdout + optional file logging)

Configuration is loaded from service_flow.config.settings:
- SERVICE_FLOW_LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
  Default: INFO
- SERVICE_FLOW_LOG_TO_FILE: Enable file logging (1, true, yes). Default: disabled
- SERVICE_FLOW_LOG_FILE_DIR: Directory for log files. Default: logs/

Usage:
    >>> from service_flow.utils.logging import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("service.started", service="User.Create", execution_id="exec_123")
"""

import logging
import os
import re
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, MutableMapping

import structlog
from structlog.types import EventDict, Processor

from service_flow.config import get_settings

# Sensitive key patterns for sanitization
SENSITIVE_PATTERNS = [
    re.compile(r".*password.*", re.IGNORECASE),
    re.compile(r".*token.*", re.IGNORECASE),
    re.compile(r".*api_key.*", re.IGNORECASE),
    re.compile(r".*secret.*", re.IGNORECASE),
    re.compile(r"^DATABASE_URL$", re.IGNORECASE),
]

REDACTED_VALUE = "[REDACTED]"


def sanitize_for_logging(data: Dict[str, Any]) -> Dict[str, Any]:
    """Redact sensitive values from a dictionary before logging.

    Service arguments are logged at debug level, so anything that looks like
    a credential is replaced before it reaches a handler.

    Args:
        data: Dictionary that may contain sensitive data

    Returns:
        New dictionary with sensitive values replaced by [REDACTED]

    Example:
        >>> sanitize_for_logging({"password": "secret123", "user": "admin"})
        {"password": "[REDACTED]", "user": "admin"}
    """
    sanitized: Dict[str, Any] = {}
    for key, value in data.items():
        if any(pattern.match(str(key)) for pattern in SENSITIVE_PATTERNS):
            sanitized[key] = REDACTED_VALUE
        elif isinstance(value, dict):
            sanitized[key] = sanitize_for_logging(value)
        else:
            sanitized[key] = value
    return sanitized


def sanitization_processor(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> MutableMapping[str, Any]:
    """Structlog processor that sanitizes sensitive fields in event_dict."""
    return sanitize_for_logging(dict(event_dict))


def _get_log_level() -> int:
    """Get log level from settings.

    Falls back to the raw environment variable when settings cannot be
    loaded (for example a malformed .env file), so logging never blocks
    importing the package.
    """
    try:
        level_name = get_settings().log_level.upper()
    except Exception:
        level_name = os.getenv("SERVICE_FLOW_LOG_LEVEL", "INFO").upper()

    return getattr(logging, level_name, logging.INFO)


def _should_log_to_file() -> bool:
    """Check if file logging is enabled."""
    try:
        return get_settings().log_to_file
    except Exception:
        log_to_file = os.getenv("SERVICE_FLOW_LOG_TO_FILE", "").lower()
        return log_to_file in ("1", "true", "yes")


def _get_log_file_path() -> Path:
    """Get the log file path with date-based naming."""
    try:
        log_dir = Path(get_settings().log_file_dir)
    except Exception:
        log_dir = Path(os.getenv("SERVICE_FLOW_LOG_FILE_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)

    # Format: service-flow-YYYYMMDD.log
    date_str = datetime.now().strftime("%Y%m%d")
    return log_dir / f"service-flow-{date_str}.log"


def _configure_structlog() -> None:
    """Configure structlog with JSON rendering and sanitization.

    Handlers are attached to the ``service_flow`` logger rather than the
    root logger so a host application keeps control of its own logging.
    """
    level = _get_log_level()

    package_logger = logging.getLogger("service_flow")
    package_logger.setLevel(level)

    if not package_logger.handlers:
        stdout_handler = logging.StreamHandler()
        stdout_handler.setLevel(level)
        stdout_handler.setFormatter(logging.Formatter("%(message)s"))
        package_logger.addHandler(stdout_handler)

        if _should_log_to_file():
            file_handler = TimedRotatingFileHandler(
                filename=str(_get_log_file_path()),
                when="midnight",
                interval=1,
                backupCount=30,  # 30-day retention
                encoding="utf-8",
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter("%(message)s"))
            package_logger.addHandler(file_handler)

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        sanitization_processor,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(default=repr),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Configure structlog on module import
_configure_structlog()


def get_logger(name: str) -> Any:
    """Get a structlog BoundLogger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        A structlog BoundLogger configured with JSON rendering and sanitization

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("service.step.completed", step="validate")
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> Any:
    """Create a logger with bound context fields.

    Args:
        **kwargs: Context fields to bind (e.g., service="Order.Create",
            execution_id="exec_123")

    Returns:
        A BoundLogger with the specified context already bound

    Example:
        >>> logger = bind_context(service="Order.Create", execution_id="exec_123")
        >>> logger.info("service.step.started", step="charge_card")
    """
    return structlog.get_logger("service_flow").bind(**kwargs)
