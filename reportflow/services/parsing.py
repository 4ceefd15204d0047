"""Tolerant parsing helpers for model output."""

import json
import logging
import re
from typing import Any, Optional

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*\n([\s\S]*?)\n\s*```")


def parse_json_response(text: Optional[str], fallback: Any) -> Any:
    """
    Parse JSON from a model response.

    Accepts a fenced code block or bare JSON. Never raises: malformed input
    yields ``fallback`` unchanged.

    Args:
        text: Raw model output
        fallback: Value returned when parsing fails

    Returns:
        Parsed JSON value or ``fallback``
    """
    if not text:
        return fallback

    try:
        match = _FENCED_JSON.search(text)
        if match:
            return json.loads(match.group(1))
        return json.loads(text.strip())
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Failed to parse JSON response: {e}")
        return fallback


def normalize_confidence(value: Any, default: float = 0.5) -> float:
    """
    Normalize a model-reported confidence into [0, 1].

    Values above 1 are treated as percentages and divided by 100. Anything
    still outside [0, 1], or not a number, becomes ``default``.
    """
    if isinstance(value, bool):
        return default
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return default

    if confidence != confidence:  # NaN
        return default
    if confidence > 1:
        confidence = confidence / 100
    if confidence < 0 or confidence > 1:
        return default
    return confidence


def coerce_str_list(value: Any) -> list:
    """Return ``value`` as a list of non-empty strings."""
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if item is not None and str(item).strip()]
