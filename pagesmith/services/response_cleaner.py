"""Helpers for turning raw provider text into usable JSON or HTML."""

import json
import math
import re
from typing import Any, Optional

from json_repair import repair_json

_FENCE_OPEN = re.compile(r"^```[a-zA-Z0-9_-]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")


def strip_code_fences(text: str) -> str:
    """Remove a leading ```lang and trailing ``` marker, if present."""
    cleaned = text.strip()
    cleaned = _FENCE_OPEN.sub("", cleaned, count=1)
    cleaned = _FENCE_CLOSE.sub("", cleaned, count=1)
    return cleaned.strip()


def clean_json_response(text: str) -> str:
    return strip_code_fences(text)


def parse_json_object(text: str) -> Optional[dict[str, Any]]:
    """Parse a fenced or bare JSON object. Returns None for anything else."""
    cleaned = clean_json_response(text)
    try:
        value = json.loads(cleaned)
    except ValueError:
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1:
            return None
        # Prose around the object, trailing commas, a missing closing brace.
        candidate = cleaned[start:end + 1] if end > start else cleaned[start:]
        try:
            value = json.loads(repair_json(candidate))
        except ValueError:
            return None
    return value if isinstance(value, dict) else None


def clean_html_response(text: str) -> str:
    """Strip fences and any preamble before ``<!DOCTYPE``.

    Raises:
        ValueError: if no doctype is present after cleaning.
    """
    cleaned = strip_code_fences(text)
    index = cleaned.lower().find("<!doctype")
    if index == -1:
        raise ValueError(
            "Invalid HTML response: missing DOCTYPE declaration. "
            f'Response starts with: "{cleaned[:50]}..."'
        )
    return cleaned[index:].strip()


def to_score(value: Any) -> Optional[int]:
    """Round a numeric score and clamp it to 1..10. Non-numbers give None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return max(1, min(10, int(round(value))))
