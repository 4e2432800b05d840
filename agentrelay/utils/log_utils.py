"""Utility functions for logging."""

import logging
import re
from typing import Any, Dict, Optional

SENSITIVE_KEYS = frozenset({
    'api_key', 'key', 'secret', 'password', 'token',
    'authorization', 'auth', 'credential'
})

_MESSAGE_PATTERNS = [
    (re.compile(r'key=[\w\-]+'), 'key=****'),
    (re.compile(r'Bearer\s+[\w\-\.]+'), 'Bearer ****'),
    (re.compile(r'password=[\w\-]+'), 'password=****'),
    (re.compile(r'token=[\w\-\.]+'), 'token=****'),
    (re.compile(r'secret=[\w\-]+'), 'secret=****'),
    (re.compile(r'sk-[A-Za-z0-9\-_]{8,}'), 'sk-****'),
]


def _mask(value: Any) -> Any:
    if isinstance(value, str):
        if len(value) > 8:
            return f"{value[:4]}...{value[-4:]}"
        return "****"
    return "[REDACTED]"


def redact_sensitive_data(data: Any) -> Any:
    """Redact secrets from structured log data.

    Keys that look sensitive have their scalar values masked; nested
    dictionaries and lists are walked.

    Args:
        data: Log payload, usually a dictionary

    Returns:
        A copy of the payload with sensitive values masked
    """
    if isinstance(data, list):
        return [redact_sensitive_data(item) for item in data]
    if not isinstance(data, dict):
        return data

    redacted = {}
    for key, value in data.items():
        if isinstance(value, (dict, list)):
            redacted[key] = redact_sensitive_data(value)
        elif any(sensitive in str(key).lower() for sensitive in SENSITIVE_KEYS):
            redacted[key] = _mask(value)
        else:
            redacted[key] = value
    return redacted


def sanitize_log_message(message: str) -> str:
    """Remove sensitive patterns from log messages.

    Args:
        message: Log message to sanitize

    Returns:
        Sanitized message
    """
    result = message
    for pattern, replacement in _MESSAGE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


def truncate(text: str, limit: int = 200) -> str:
    """Shorten text for log previews."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def resolve_logger(logger: Optional[logging.Logger], default: logging.Logger) -> logging.Logger:
    """Return the caller-supplied logger, or the module default."""
    return logger if logger is not None else default


def safe_log(logger: logging.Logger, level: int, message: str, **fields: Any) -> None:
    """Log ``message`` with redacted structured fields.

    A misbehaving logger must never change the outcome of the operation being
    logged, so failures raised by the logger itself are dropped here.
    """
    try:
        logger.log(level, sanitize_log_message(message), extra=redact_sensitive_data(fields))
    except Exception:  # noqa: BLE001
        pass
