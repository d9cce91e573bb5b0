"""DNA synthesizer.

Collapses the partial DNAs produced by batched extraction into one profile
with a second AI call.  The target word count is computed by the caller
from the real scripts and always overrides whatever the model restates.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace

from ..models import GenerationContext, ScriptDNA, dedupe_urls
from ..timing import timed_node
from .openrouter_client import with_timeout
from .dna_batch import DNA_SYSTEM_PROMPT, dna_system_prompt, parse_dna_response
from .prompting import language_instruction, load_prompt

log = logging.getLogger(__name__)

_USER_TEMPLATE = load_prompt("dna_synthesis_user.txt")
_RULES_TEMPLATE = load_prompt("dna_synthesis_rules.txt")


def _with_target(dna: ScriptDNA, target_word_count: int) -> ScriptDNA:
    analysis = dict(dna.analysis)
    analysis["target_word_count_range"] = str(target_word_count)
    return replace(dna, analysis=analysis)


def build_synthesis_prompt(dnas: list[ScriptDNA], target_word_count: int, language: str) -> str:
    dna_blocks = "\n\n".join(
        f"=== DNA #{i} ===\n{json.dumps(dna.analysis, indent=2, ensure_ascii=False)}"
        for i, dna in enumerate(dnas, start=1)
    )
    prompt = _USER_TEMPLATE.format(
        count=len(dnas),
        dna_blocks=dna_blocks,
        target_word_count=target_word_count,
    )
    return prompt + language_instruction(language) + "\n\nOUTPUT PURE JSON ONLY."


@timed_node("dna_synthesis", "ai", count_arg=0)
async def synthesize_dnas(
    dnas: list[ScriptDNA],
    target_word_count: int,
    ctx: GenerationContext,
) -> ScriptDNA:
    """Merge *dnas* into one profile whose target is *target_word_count*.

    A single input is returned (as a copy) with only the target stamped on;
    no model call is made.
    """
    if not dnas:
        raise ValueError("No DNA to synthesize")
    if len(dnas) == 1:
        return _with_target(dnas[0], target_word_count)

    log.info("Synthesizing %d DNAs with AI, target %d words", len(dnas), target_word_count)

    system_prompt = dna_system_prompt(
        DNA_SYSTEM_PROMPT,
        _RULES_TEMPLATE.format(target_word_count=target_word_count),
    )
    prompt = build_synthesis_prompt(dnas, target_word_count, ctx.language)

    response_text = await with_timeout(
        ctx.client.generate(ctx.model_id, system_prompt, prompt, ctx.credential, True),
        ctx.call_timeout,
        "DNA synthesis",
    )

    synthesized = parse_dna_response(response_text, [], id_kind="synthesized")
    synthesized.source_urls = dedupe_urls(url for dna in dnas for url in dna.source_urls)
    return _with_target(synthesized, target_word_count)
