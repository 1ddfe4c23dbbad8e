"""
Structured logging configuration.

Every module logs through the standard library (`logging.getLogger(__name__)`).
setup_logging installs a structlog ProcessorFormatter on the root handler, so
those records and any structlog loggers share one pipeline:

    development  ->  readable console lines
    production   ->  one JSON object per line

Sensitive values (passwords, tokens, emergency codes and their hashes) are
redacted in both modes before a record is rendered.
"""
import logging
import re
import sys
from typing import Any

import structlog

from authguard.core.config import settings

# Key substrings that are always redacted
SENSITIVE_FIELDS = [
    'password',
    'token',
    'api_key',
    'secret',
    'session_id',
    'authorization',
    'cookie',
    'emergency_code',
    'code_hash',
]

# Keys redacted only on an exact match ("status_code" stays readable)
EXACT_SENSITIVE_KEYS = {'code'}

REDACTED = "***REDACTED***"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Chatty third-party loggers kept at WARNING
_QUIET_LOGGERS = ('sqlalchemy.engine', 'sqlalchemy.pool', 'httpx', 'httpcore', 'aiosqlite')


def setup_logging() -> None:
    """Configure logging for the process from settings.DEBUG and settings.LOG_LEVEL."""
    level = getattr(logging, settings.LOG_LEVEL)

    if settings.DEBUG:
        renderer = structlog.dev.ConsoleRenderer(colors=False)
    else:
        renderer = structlog.processors.JSONRenderer()

    configure_logging(level, renderer)


def configure_logging(level: int, renderer: Any) -> None:
    shared_processors = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.ExtraAdder(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_service_name,
        redact_sensitive_data,
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            *shared_processors,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
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
                structlog.processors.format_exc_info,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def add_service_name(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    event_dict.setdefault("service", settings.APP_NAME)
    return event_dict


def redact_sensitive_data(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """
    Redact sensitive data from a structlog event dict.

    Keys naming a secret are replaced outright, nested dicts (audit metadata
    passed as `extra`) are walked, and other string values go through
    redact_string. The event message itself is left alone.
    """
    redacted = _redact_mapping(event_dict)
    if "event" in event_dict:
        redacted["event"] = event_dict["event"]
    return redacted


def _redact_mapping(data: dict[Any, Any]) -> dict[Any, Any]:
    redacted = data.copy()

    for key, value in redacted.items():
        if not isinstance(key, str):
            continue
        if is_sensitive_key(key):
            redacted[key] = REDACTED
        elif isinstance(value, dict):
            redacted[key] = _redact_mapping(value)
        elif isinstance(value, str):
            redacted[key] = redact_string(value)

    return redacted


def is_sensitive_key(key: str) -> bool:
    key_lower = key.lower()
    return key_lower in EXACT_SENSITIVE_KEYS or any(
        sensitive in key_lower for sensitive in SENSITIVE_FIELDS
    )


def redact_string(value: str) -> str:
    """
    Redact sensitive patterns from strings.

    Patterns:
    - Email addresses
    - API keys (long alphanumeric strings)
    """
    if _EMAIL_RE.match(value):
        local, domain = value.split('@', 1)
        return f"{local[0]}***@{domain}"

    if len(value) > 20 and value.replace('_', '').replace('-', '').isalnum():
        return f"{value[:8]}...{value[-4:]}"

    return value
