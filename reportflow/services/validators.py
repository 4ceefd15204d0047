"""Input validation and sanitization helpers."""

import re

from reportflow.exceptions import TopicValidationError

MIN_TOPIC_LENGTH = 3
MAX_TOPIC_LENGTH = 500

# Keep word characters, whitespace and common punctuation
_DISALLOWED_TOPIC_CHARS = re.compile(r"[^\w\s.,;:?!()\-'\"/&]")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")

_EMAIL = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_UUID = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE)
_TOKEN = re.compile(r"[A-Za-z0-9_-]{20,}")

ERROR_MESSAGES = {
    # Authentication
    "AUTH_FAILED": "Authentication failed",
    "ACCOUNT_INACTIVE": "Your account is currently inactive",
    "UNAUTHORIZED": "You are not authorized to perform this action",
    # Topic
    "INVALID_TOPIC": "Please provide a valid research topic",
    "TOPIC_TOO_SHORT": "Topic must be at least 3 characters",
    "TOPIC_TOO_LONG": "Topic must be less than 500 characters",
    # Resources
    "RESOURCE_NOT_FOUND": "The requested resource was not found",
    "INSUFFICIENT_CREDITS": "You do not have enough credits",
    # Generic
    "BAD_REQUEST": "Invalid request",
    "INTERNAL_ERROR": "An error occurred while processing your request",
    "RATE_LIMIT_EXCEEDED": "Too many requests. Please try again later",
}


def get_error_message(code: str) -> str:
    """User-facing message for an error code."""
    return ERROR_MESSAGES.get(code, ERROR_MESSAGES["INTERNAL_ERROR"])


def sanitize_topic(topic) -> str:
    """
    Validate and sanitize a research topic.

    Args:
        topic: Raw topic value

    Returns:
        Sanitized topic, 3-500 characters

    Raises:
        TopicValidationError: With one of INVALID_TOPIC_TYPE, TOPIC_TOO_SHORT,
            TOPIC_TOO_LONG, TOPIC_INVALID_AFTER_SANITIZATION
    """
    if not topic or not isinstance(topic, str):
        raise TopicValidationError("INVALID_TOPIC_TYPE")

    sanitized = topic.strip()

    if len(sanitized) < MIN_TOPIC_LENGTH:
        raise TopicValidationError("TOPIC_TOO_SHORT")
    if len(sanitized) > MAX_TOPIC_LENGTH:
        raise TopicValidationError("TOPIC_TOO_LONG")

    # \s matches some control characters, drop those first
    sanitized = _CONTROL_CHARS.sub(" ", sanitized)
    sanitized = _DISALLOWED_TOPIC_CHARS.sub("", sanitized)
    sanitized = _WHITESPACE.sub(" ", sanitized).strip()

    if len(sanitized) < MIN_TOPIC_LENGTH:
        raise TopicValidationError("TOPIC_INVALID_AFTER_SANITIZATION")

    return sanitized


def sanitize_for_logging(text) -> str:
    """Mask emails, UUIDs and token-like strings before logging."""
    if not text or not isinstance(text, str):
        return "[invalid]"

    sanitized = _EMAIL.sub("[EMAIL]", text)
    sanitized = _UUID.sub("[UUID]", sanitized)
    return _TOKEN.sub("[TOKEN]", sanitized)
