"""Decoding of structured AI output."""

import json
from typing import Any, Dict, List

from ..core.exceptions import MalformedAIOutputError


def pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """First present, non-None value among `keys` (camelCase or snake_case)."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return default


def as_str_list(value: Any) -> List[str]:
    """Coerce an AI-provided list field to a list of non-empty strings."""
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if item is not None and str(item).strip()]


def as_number(value: Any, default: float) -> float:
    """Coerce an AI-provided number, using `default` when it is missing or not numeric."""
    if isinstance(value, bool) or value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _strip_code_fence(text: str) -> str:
    if "```json" in text:
        return text.split("```json", 1)[1].split("```", 1)[0]
    if text.startswith("```"):
        return text.strip("`").strip()
    return text


def parse_ai_json(content: str) -> Dict[str, Any]:
    """
    Decode a JSON object from raw model output.

    Accepts a bare object, a ```json fenced block, or prose around the first
    ``{...}`` block.

    Raises:
        MalformedAIOutputError: No JSON object could be decoded
    """
    text = _strip_code_fence((content or "").strip()).strip()
    if not text:
        raise MalformedAIOutputError("Empty AI response", raw=content or "")

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end <= start:
            raise MalformedAIOutputError(raw=content) from None
        try:
            parsed = json.loads(text[start:end + 1])
        except json.JSONDecodeError as e:
            raise MalformedAIOutputError(raw=content) from e

    if not isinstance(parsed, dict):
        raise MalformedAIOutputError("AI response is not a JSON object", raw=content)
    return parsed
