"""Script scoring against a DNA or a custom rubric."""

from __future__ import annotations

import json
import logging
import time

from ..errors import ResponseStructureError
from ..models import GenerationContext, ScoringResult, ScoringTemplate, ScriptDNA
from ..timing import timed_node
from .openrouter_client import with_timeout
from .json_repair import parse_ai_json
from .prompting import language_instruction, load_prompt
from .sanitizer import sanitize_text

log = logging.getLogger(__name__)

SCORING_MODES = frozenset(["dna", "custom"])

_SYSTEM_PROMPT = load_prompt("scoring_system.txt")
_USER_TEMPLATE = load_prompt("scoring_user.txt")

_RESPONSE_TEMPLATE = {
    "total_score": "number (0-100)",
    "breakdown": [
        {
            "criteria": "string (name of criterion)",
            "score": "number (0-100)",
            "reasoning": "string (why this score)",
            "improvement_tip": "string (actionable advice)",
        }
    ],
    "overall_feedback": "string (overall verdict)",
}

SYSTEM_PROMPT = (
    f"{_SYSTEM_PROMPT}\n\n"
    "CRITICAL: You MUST respond with ONLY valid JSON matching this exact structure:\n"
    f"{json.dumps(_RESPONSE_TEMPLATE, indent=2)}\n\n"
    "DO NOT include any text before or after the JSON.\n"
    "DO NOT return the structure itself - return ACTUAL DATA with real scores and feedback.\n"
    "All score values must be numbers between 0-100."
)


def dna_criteria(dna: ScriptDNA) -> str:
    analysis = dna.analysis
    criteria = (
        "COMPARE AGAINST DNA:\n"
        f"Tone: {sanitize_text(analysis.get('tone'))}\n"
        f"Pacing: {sanitize_text(analysis.get('pacing'))}"
    )

    skeleton = dna.structure_skeleton
    if not skeleton:
        return criteria

    if isinstance(skeleton[0], dict):
        details = "\n".join(
            f"Section {i} ({sanitize_text(s.get('section_name'))}): "
            f"Tone='{sanitize_text(s.get('tone')) or 'N/A'}', "
            f"Pacing='{sanitize_text(s.get('pacing')) or 'N/A'}', "
            f"Focus='{sanitize_text(s.get('content_focus')) or 'N/A'}'"
            for i, s in enumerate(skeleton, start=1)
            if isinstance(s, dict)
        )
        criteria += f"\n\nSTRUCTURE REQUIREMENTS:\n{details}"
    else:
        # legacy string skeleton
        criteria += f"\n\nSTRUCTURE SKELETON: {', '.join(sanitize_text(s) for s in skeleton)}"
    return criteria


def template_criteria(template: ScoringTemplate) -> str:
    rules = "\n".join(
        f"{i}. {sanitize_text(c.name)}: {sanitize_text(c.description)}"
        for i, c in enumerate(template.criteria, start=1)
    )
    return f"EVALUATE AGAINST:\n{rules}"


@timed_node("scoring", "ai")
async def analyze_script_score(
    full_script: str,
    mode: str,
    ctx: GenerationContext,
    dna: ScriptDNA | None = None,
    template: ScoringTemplate | None = None,
) -> ScoringResult:
    """Score *full_script*; ``mode`` is ``"dna"`` or ``"custom"``."""
    if mode == "dna":
        if dna is None:
            raise ValueError("No DNA provided.")
        criteria = dna_criteria(dna)
        source_info = f"DNA: {dna.name}"
    elif mode == "custom":
        if template is None:
            raise ValueError("No criteria provided.")
        criteria = template_criteria(template)
        source_info = f"Rule: {template.name}"
    else:
        raise ValueError(f"Unknown scoring mode: {mode!r}")

    prompt = _USER_TEMPLATE.format(script=sanitize_text(full_script), criteria=criteria)
    prompt += language_instruction(ctx.language)

    response_text = await with_timeout(
        ctx.client.generate(ctx.model_id, SYSTEM_PROMPT, prompt, ctx.credential, True),
        ctx.call_timeout,
        "Script scoring",
    )
    parsed = parse_ai_json(response_text, label="scoring response")

    total = parsed.get("total_score") if isinstance(parsed, dict) else None
    if isinstance(total, bool) or not isinstance(total, (int, float)):
        log.error("Scoring response has non-numeric total_score: %.500s", response_text)
        raise ResponseStructureError(
            "AI returned invalid score format - total_score must be a number",
            parsed,
        )

    breakdown = parsed.get("breakdown")
    return ScoringResult(
        total_score=total,
        breakdown=[b for b in breakdown if isinstance(b, dict)] if isinstance(breakdown, list) else [],
        overall_feedback=str(parsed.get("overall_feedback") or ""),
        timestamp=time.time_ns() // 1_000_000,
        source_info=source_info,
    )
