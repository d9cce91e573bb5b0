"""Control-character scrubbing for text embedded in prompts."""

from __future__ import annotations

import re
from typing import Any

# ASCII control characters except tab (0x09) and newline (0x0A).
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B-\x1F\x7F]")


def sanitize_text(text: Any) -> str:
    """Return *text* without control characters; ``None``/empty -> ``""``.

    Non-string values (model-supplied numbers, lists) are stringified first.
    """
    if not text:
        return ""
    if not isinstance(text, str):
        text = str(text)
    return _CONTROL_CHARS.sub("", text)
