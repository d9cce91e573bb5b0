"""DNA extraction pipeline.

Entry point for turning viral/flop reference sets into a ``ScriptDNA``:

* two or fewer virals: one direct extraction call;
* more: staggered batches of two, then an AI synthesis pass.

Also hosts ``refine_script_dna``, which evolves an existing profile with
new references.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import replace
from typing import Optional

from ..ids import dna_id
from ..models import ContentPiece, GenerationContext, ScriptDNA, dedupe_urls
from ..timing import timed_node
from . import batching, dna_synthesis
from .dna_batch import dna_system_prompt, extract_single_batch, parse_dna_response
from .openrouter_client import with_timeout
from .prompting import JSON_ONLY_REMINDER, format_references, language_instruction, load_prompt
from .sanitizer import sanitize_text

log = logging.getLogger(__name__)

_REFINEMENT_SYSTEM_PROMPT = load_prompt("dna_refinement_system.txt")
_REFINEMENT_USER_TEMPLATE = load_prompt("dna_refinement_user.txt")
_REFINEMENT_CUSTOM_TEMPLATE = load_prompt("dna_refinement_custom_user.txt")

DEFAULT_WORD_COUNT_RANGE = "1000-2000"
DEFAULT_AVERAGE_WORD_COUNT = 1500
_ROUND_TO = 50


@timed_node("word_count_range", "programmatic", count_arg=0)
def word_count_range(pieces: list[ContentPiece]) -> str:
    """Observed ``"min-max"`` word count, min floored and max ceiled to 50."""
    if not pieces:
        return DEFAULT_WORD_COUNT_RANGE

    counts = [p.word_count() for p in pieces]
    log.info("Word counts per script: %s", counts)
    low = (min(counts) // _ROUND_TO) * _ROUND_TO
    high = math.ceil(max(counts) / _ROUND_TO) * _ROUND_TO
    return f"{low}-{high}"


def average_word_count(pieces: list[ContentPiece]) -> int:
    """Mean word count rounded to the nearest integer (halves round up)."""
    if not pieces:
        return DEFAULT_AVERAGE_WORD_COUNT
    counts = [p.word_count() for p in pieces]
    return math.floor(sum(counts) / len(counts) + 0.5)


async def extract_script_dna(
    virals: list[ContentPiece],
    flops: list[ContentPiece],
    ctx: GenerationContext,
    custom_prompt: str | None = None,
    on_progress: Optional[batching.ProgressCallback] = None,
    delay_range: tuple[float, float] = batching.STAGGER_DELAY_S,
) -> ScriptDNA:
    """Extract one DNA profile from *virals*, contrasted against *flops*."""
    range_text = word_count_range(virals)
    log.info("DNA input: %d viral(s), %d flop(s), word count range %s",
             len(virals), len(flops), range_text)

    if len(virals) <= batching.BATCH_SIZE:
        dna = await with_timeout(
            extract_single_batch(virals, flops, ctx, custom_prompt),
            ctx.call_timeout,
            "DNA extraction",
        )
        analysis = dict(dna.analysis)
        analysis["target_word_count_range"] = range_text
        return replace(dna, analysis=analysis)

    partials = await batching.extract_in_batches(
        virals, flops, ctx,
        custom_prompt=custom_prompt,
        on_progress=on_progress,
        delay_range=delay_range,
    )

    target = average_word_count(virals)
    log.info("All batches completed, synthesizing %d partial DNAs (target %d words)",
             len(partials), target)
    return await dna_synthesis.synthesize_dnas(partials, target, ctx)


def build_refinement_prompt(
    existing: ScriptDNA,
    new_virals: list[ContentPiece],
    new_flops: list[ContentPiece],
    language: str,
    custom_prompt: str | None = None,
) -> str:
    existing_json = json.dumps(existing.analysis, indent=2, ensure_ascii=False)
    virals_text = format_references(new_virals, "NEW VIRAL")
    flops_text = format_references(new_flops, "NEW FLOP")

    if custom_prompt and custom_prompt.strip():
        prompt = _REFINEMENT_CUSTOM_TEMPLATE.format(
            existing_dna=existing_json,
            virals=virals_text,
            flops=flops_text,
            custom_prompt=sanitize_text(custom_prompt),
        )
    else:
        prompt = _REFINEMENT_USER_TEMPLATE.format(
            existing_dna=existing_json,
            virals=virals_text,
            flops=flops_text,
        )
    return prompt + language_instruction(language) + JSON_ONLY_REMINDER


@timed_node("dna_refinement", "ai", count_arg=1)
async def refine_script_dna(
    existing: ScriptDNA,
    new_virals: list[ContentPiece],
    new_flops: list[ContentPiece],
    ctx: GenerationContext,
    custom_prompt: str | None = None,
) -> ScriptDNA:
    """Overlay a refinement pass onto *existing*.

    The id is kept, new analysis keys replace old ones, and source urls are
    the union of the existing ones and the new virals'.
    """
    prompt = build_refinement_prompt(existing, new_virals, new_flops, ctx.language, custom_prompt)
    log.info("Refining DNA %s with %d new viral(s), prompt %d chars",
             existing.id, len(new_virals), len(prompt))

    try:
        response_text = await with_timeout(
            ctx.client.generate(
                ctx.model_id,
                dna_system_prompt(_REFINEMENT_SYSTEM_PROMPT),
                prompt,
                ctx.credential,
                True,
            ),
            ctx.call_timeout,
            "DNA refinement",
        )
        evolved = parse_dna_response(response_text, new_virals)
    except Exception:
        log.exception("DNA refinement failed for %s", existing.id)
        raise

    return replace(
        existing,
        id=existing.id or dna_id("evolved"),
        name=evolved.name or existing.name,
        niche=evolved.niche or existing.niche,
        analysis={**existing.analysis, **evolved.analysis},
        source_urls=dedupe_urls([*existing.source_urls, *(p.url for p in new_virals)]),
    )
