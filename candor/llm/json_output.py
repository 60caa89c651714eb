"""
Helpers for JSON-mode completions.

Providers are not fully reliable about omitting markdown fences, and
sometimes return something that isn't JSON at all. Callers that need
structured output recover with a safe default instead of failing the turn.
"""

import json
import logging
import re

from candor.errors.exceptions import MalformedOutputError

logger = logging.getLogger(__name__)

_OPENING_FENCE = re.compile(r"^```[A-Za-z0-9_-]*[ \t]*\n?")
_CLOSING_FENCE = re.compile(r"\n?```\s*$")


def strip_code_fences(text: str) -> str:
    """Remove a leading ```lang fence and a trailing ``` fence, if present."""
    trimmed = text.strip()
    if not trimmed.startswith("```"):
        return trimmed
    trimmed = _OPENING_FENCE.sub("", trimmed, count=1)
    trimmed = _CLOSING_FENCE.sub("", trimmed, count=1)
    return trimmed.strip()


def load_json_object(text: str) -> dict:
    """Parse LLM output as a JSON object. Raises MalformedOutputError."""
    try:
        parsed = json.loads(strip_code_fences(text))
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedOutputError(f"Not JSON: {e} ({str(text)[:120]!r})") from e
    if not isinstance(parsed, dict):
        raise MalformedOutputError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def parse_json_object(text: str, default: dict) -> dict:
    """
    Parse LLM output as a JSON object.
    Malformed output is logged and replaced by a copy of `default`.
    """
    try:
        return load_json_object(text)
    except MalformedOutputError as e:
        logger.warning(f"Malformed JSON from model, using default: {e}")
        return dict(default)
