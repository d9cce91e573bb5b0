"""Niche detection.

Classifies the niche and tone of every reference script in one call, so
the caller can warn when a DNA is about to be built from mixed niches.
Non-blocking: any failure degrades to ``Unknown`` for every script.
"""

from __future__ import annotations

import json
import logging
from collections import Counter

from ..models import ContentPiece, GenerationContext, NicheCompatibility, NicheResult
from ..timing import timed_node
from .openrouter_client import with_timeout
from .json_repair import strip_code_fences
from .prompting import load_prompt
from .sanitizer import sanitize_text

log = logging.getLogger(__name__)

_USER_TEMPLATE = load_prompt("niche_user.txt")
_SYSTEM_PROMPT = "You are a helpful JSON bot."
_UNKNOWN = "Unknown"
_MAX_SCRIPT_CHARS = 5000


def _format_scripts(scripts: list[ContentPiece]) -> str:
    return "\n\n----------------\n\n".join(
        f"SCRIPT #{i}:\n"
        f"Title: {sanitize_text(s.title) or 'Untitled'}\n"
        f"Content:\n{sanitize_text(s.script)[:_MAX_SCRIPT_CHARS]}... (Truncated for analysis)"
        for i, s in enumerate(scripts, start=1)
    )


def _parse_results(response_text: str) -> list[NicheResult]:
    parsed = json.loads(strip_code_fences(response_text.strip()).strip())
    if isinstance(parsed, dict):
        # Some models wrap the array: {"results": [...]}
        parsed = next((v for v in parsed.values() if isinstance(v, list)), [])

    results = []
    for entry in parsed:
        if not isinstance(entry, dict):
            continue
        index = entry.get("scriptIndex", entry.get("script_index"))
        if not isinstance(index, int):
            continue
        results.append(NicheResult(
            script_index=index,
            niche=str(entry.get("niche") or _UNKNOWN),
            tone=str(entry.get("tone") or _UNKNOWN),
        ))
    return results


@timed_node("niche_detection", "ai", count_arg=0)
async def detect_script_niches(
    scripts: list[ContentPiece],
    ctx: GenerationContext,
) -> list[NicheResult]:
    """Return one ``NicheResult`` per script (1-based ``script_index``)."""
    if not scripts:
        return []

    prompt = _USER_TEMPLATE.format(count=len(scripts), scripts=_format_scripts(scripts))

    try:
        response_text = await with_timeout(
            ctx.client.generate(ctx.model_id, _SYSTEM_PROMPT, prompt, ctx.credential, True),
            ctx.call_timeout,
            "Niche detection",
        )
        results = _parse_results(response_text)
    except Exception:
        log.exception("Niche detection failed, falling back to %s", _UNKNOWN)
        return [NicheResult(i, _UNKNOWN, _UNKNOWN) for i in range(1, len(scripts) + 1)]

    log.info("Niche detection: %s", [(r.script_index, r.niche) for r in results])
    return results


def analyze_niche_compatibility(results: list[NicheResult]) -> NicheCompatibility:
    """Pick the majority niche and split script indices by it.

    Ties go to the niche seen first.
    """
    if not results:
        return NicheCompatibility()

    counts = Counter(r.niche or _UNKNOWN for r in results)
    majority = counts.most_common(1)[0][0]

    compat = NicheCompatibility(majority_niche=majority)
    for r in results:
        if (r.niche or _UNKNOWN) == majority:
            compat.matched_indices.append(r.script_index)
        else:
            compat.mismatched_indices.append(r.script_index)
    return compat
