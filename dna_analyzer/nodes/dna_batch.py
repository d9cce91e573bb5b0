"""Single DNA extraction call.

One prompt over a handful of viral (and optionally flop) references,
returning one partial ``ScriptDNA``.  The batch orchestrator calls this once
per group; the extraction pipeline calls it directly for small inputs.
"""

from __future__ import annotations

import json
import logging

from ..errors import ResponseStructureError
from ..ids import dna_id
from ..models import ContentPiece, GenerationContext, ScriptDNA
from ..timing import timed_node
from .json_repair import parse_ai_json
from .prompting import (
    JSON_ONLY_REMINDER,
    format_references,
    language_instruction,
    load_prompt,
)
from .sanitizer import sanitize_text
from .schema_unwrap import unwrap_schema

log = logging.getLogger(__name__)

DNA_SYSTEM_PROMPT = load_prompt("dna_system.txt")
_USER_TEMPLATE = load_prompt("dna_user.txt")
_CUSTOM_USER_TEMPLATE = load_prompt("dna_custom_user.txt")

# Filled example rather than a JSON schema: models shown a schema tend to
# answer with one.
DNA_TEMPLATE = {
    "name": "Pattern Name",
    "niche": "Industry/Category (e.g. Health, Finance, Gaming)",
    "analysis": {
        "pacing": "Description",
        "tone": "Description",
        "structure_skeleton": [
            {
                "section_name": "Hook",
                "timing": "0-8s",
                "word_count_range": "40-60",
                "tone": "Urgent",
                "pacing": "Fast cuts every 2s",
                "content_focus": "Grab attention with shocking statement",
                "must_include": ["Sound effect"],
                "audience_value": "Instant curiosity and emotional hook",
                "audience_reaction": "Shock",
                "viral_triggers": "Loud noise",
                "open_loop": "Big question",
                "transition_out": "Cut to black",
            }
        ],
        "hook_technique": "Description",
        "retention_tactics": ["Tactic 1", "Tactic 2"],
        "audience_psychology": "Description",
        "audience_sentiment": {
            "high_dopamine_triggers": ["Trigger 1"],
            "confusion_points": ["Point 1"],
            "objections": ["Objection 1"],
        },
        "contrastive_insight": "Insight",
        "linguistic_style": "Description",
        "successful_patterns": ["Pattern 1"],
        "content_gaps": ["Gap 1"],
        "viral_triggers": ["Trigger 1"],
        "flop_reasons": ["Reason 1"],
        "target_platform": "YouTube Shorts",
        "target_length": "60s",
        "target_word_count_range": "3000-3400",
        "overall_vibe": "Description",
    },
    "raw_transcript_summary": "Summary",
}


def dna_system_prompt(base: str = DNA_SYSTEM_PROMPT, extra_rules: str = "") -> str:
    """Append the output rule and the filled template to a system prompt."""
    rules = extra_rules or (
        "CRITICAL OUTPUT RULE: You MUST return valid JSON matching the template below.\n"
        "- Do NOT output schema definitions.\n"
        "- Output the FILLED data object."
    )
    return f"{base}\n\n{rules}\n\nTEMPLATE:\n{json.dumps(DNA_TEMPLATE, indent=2)}"


def parse_dna_response(
    response_text: str,
    sources: list[ContentPiece],
    *,
    id_kind: str = "",
) -> ScriptDNA:
    """Turn model output into a ``ScriptDNA``.

    The generated id and the urls of *sources* win over anything the model
    echoed back for those fields.
    """
    parsed = unwrap_schema(parse_ai_json(response_text, label="DNA response"))
    if isinstance(parsed, dict) and isinstance(parsed.get("dna"), dict):
        parsed = parsed["dna"]
    if not isinstance(parsed, dict):
        log.error("DNA response is not a JSON object: %.500s", response_text)
        raise ResponseStructureError("AI returned JSON, but not a DNA object.", parsed)
    if parsed.get("analysis") is not None and not isinstance(parsed["analysis"], dict):
        log.error("DNA response has a non-object analysis: %.500s", response_text)
        raise ResponseStructureError(
            "AI returned JSON, but its 'analysis' field is not an object.",
            parsed,
        )

    return ScriptDNA.from_dict({
        **parsed,
        "id": dna_id(id_kind),
        "source_urls": [p.url for p in sources],
    })


def build_extraction_prompt(
    virals: list[ContentPiece],
    flops: list[ContentPiece],
    language: str,
    custom_prompt: str | None = None,
) -> str:
    virals_text = format_references(virals, "VIRAL")
    flops_text = format_references(flops, "FLOP")

    if custom_prompt and custom_prompt.strip():
        prompt = _CUSTOM_USER_TEMPLATE.format(
            virals=virals_text,
            flops=flops_text,
            custom_prompt=sanitize_text(custom_prompt),
        )
    else:
        prompt = _USER_TEMPLATE.format(virals=virals_text, flops=flops_text)

    return prompt + language_instruction(language) + JSON_ONLY_REMINDER


@timed_node("dna_batch", "ai", count_arg=0)
async def extract_single_batch(
    virals: list[ContentPiece],
    flops: list[ContentPiece],
    ctx: GenerationContext,
    custom_prompt: str | None = None,
) -> ScriptDNA:
    """Run one extraction call over *virals* (and *flops*) and parse it."""
    prompt = build_extraction_prompt(virals, flops, ctx.language, custom_prompt)
    log.info("DNA batch: %d viral, %d flop reference(s), prompt %d chars",
             len(virals), len(flops), len(prompt))

    response_text = await ctx.client.generate(
        ctx.model_id, dna_system_prompt(), prompt, ctx.credential, True,
    )
    return parse_dna_response(response_text, virals)
