"""
Error message sanitization for HTTP responses.

Exception text can carry file paths, SQL fragments or API keys; only short,
plain validation messages are passed through to clients.
"""

from __future__ import annotations

import re

from biosynth.observability.logging import get_logger

logger = get_logger(__name__)

SENSITIVE_PATTERNS = [
    # File paths
    r"/[^\s]+\.py",
    r"[A-Za-z]:\\[^\s]+",
    # Stack traces
    r"Traceback \(most recent call last\)",
    r"File \".*\"",
    r"line \d+",
    # Database errors
    r"sqlite3?\.",
    r"UNIQUE constraint",
    r"FOREIGN KEY constraint",
    r"no such table",
    r"no such column",
    r"database is locked",
    # Keys and tokens
    r"[A-Za-z0-9_-]{20,}",
    r"Bearer [A-Za-z0-9._-]+",
    r"API[_ ]?key",
    # Internal module names
    r"biosynth\.[a-z_.]+",
]

GENERIC_MESSAGES = {
    400: "Invalid request. Please check your input and try again.",
    401: "Authentication required.",
    403: "Access denied.",
    404: "Resource not found.",
    422: "Invalid data format.",
    429: "Too many requests. Please try again later.",
    500: "An internal error occurred. Please try again later.",
    503: "Service temporarily unavailable.",
}


def sanitize_error_message(
    message: str,
    status_code: int = 500,
    allow_field_names: bool = True,
) -> str:
    """
    Return message if it is safe to show a client, else a generic message.

    Only short single-line 400 messages without brackets survive.
    """
    if not message:
        return GENERIC_MESSAGES.get(status_code, "An error occurred.")

    for pattern in SENSITIVE_PATTERNS:
        if re.search(pattern, message, re.IGNORECASE):
            logger.warning("Sanitized sensitive error pattern: %s", pattern)
            return GENERIC_MESSAGES.get(status_code, "An error occurred.")

    if (
        status_code == 400
        and allow_field_names
        and len(message) < 100
        and not any(c in message for c in ["{", "}", "[", "]", "\n"])
    ):
        return message

    return GENERIC_MESSAGES.get(status_code, "An error occurred.")


def get_safe_error_detail(
    error: Exception,
    status_code: int = 500,
    context: str | None = None,
) -> str:
    """
    Log the full error and return a client-safe detail string.

    For 5xx errors with a context ("Automation task failed"), the context is
    returned as-is.
    """
    logger.error("Error (status=%d): %s - %s", status_code, type(error).__name__, error)

    if context and status_code >= 500:
        return context
    return sanitize_error_message(str(error), status_code)
