"""Best-effort recovery of JSON objects from LLM output.

Models asked for "pure JSON" still wrap it in Markdown fences, prepend a
sentence of prose, or leave a trailing comma.  ``repair_json`` undoes those
three mistakes and nothing more; ``parse_ai_json`` tries the raw text first
and the repaired text second, and gives up loudly after that.
"""

from __future__ import annotations

import json
import logging
import re

from ..errors import ResponseParseError

log = logging.getLogger(__name__)

_FENCE_OPEN_JSON = re.compile(r"^```json\s*", re.IGNORECASE)
_FENCE_OPEN = re.compile(r"^```\s*")
_FENCE_CLOSE = re.compile(r"```\s*$")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")

_RAW_PREVIEW_CHARS = 500


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json / ``` opener and a trailing ``` fence."""
    cleaned = _FENCE_OPEN_JSON.sub("", text)
    cleaned = _FENCE_OPEN.sub("", cleaned)
    return _FENCE_CLOSE.sub("", cleaned)


def repair_json(raw_text: str | None) -> str:
    """Return a candidate JSON object string.  Never raises.

    The result is not guaranteed to parse.
    """
    if not raw_text:
        return "{}"
    cleaned = raw_text.strip()
    if not cleaned:
        return "{}"

    cleaned = strip_code_fences(cleaned)

    first = cleaned.find("{")
    last = cleaned.rfind("}")
    if first != -1 and last > first:
        cleaned = cleaned[first:last + 1]

    return _TRAILING_COMMA.sub(r"\1", cleaned)


def parse_ai_json(raw_text: str | None, *, label: str = "AI response"):
    """Parse *raw_text*, falling back to ``repair_json`` once.

    Raises ``ResponseParseError`` when the repaired text still fails.
    """
    if not raw_text or not raw_text.strip():
        return {}

    try:
        return json.loads(raw_text)
    except json.JSONDecodeError:
        log.warning("%s: initial JSON parse failed, attempting repair", label)

    repaired = repair_json(raw_text)
    try:
        return json.loads(repaired)
    except json.JSONDecodeError as exc:
        log.error("%s: JSON parse failed after repair (%s). Raw: %s",
                  label, exc, raw_text[:_RAW_PREVIEW_CHARS])
        raise ResponseParseError(
            f"Failed to parse {label} as JSON. The raw model output was logged.",
            raw_text=raw_text,
        ) from exc
