"""Blueprint pipeline.

Turns a draft or idea, plus optional DNA, scoring rubric, notes and
viral/flop references, into a ``ScriptBlueprint``.

``sections`` is the one field that is never defaulted: a blueprint without
a section list is a failed generation.
"""

from __future__ import annotations

import json
import logging

from ..errors import ResponseStructureError
from ..ids import section_ids
from ..models import (
    BlueprintOptions,
    BlueprintSection,
    ContentPiece,
    GenerationContext,
    ScriptBlueprint,
    ScriptDNA,
    ScoringTemplate,
)
from ..timing import timed_node
from .openrouter_client import with_timeout
from .json_repair import parse_ai_json
from .prompting import language_instruction, load_prompt
from .sanitizer import sanitize_text
from .schema_unwrap import unwrap_schema

log = logging.getLogger(__name__)

_SYSTEM_PROMPT = load_prompt("blueprint_system.txt")
_USER_TEMPLATE = load_prompt("blueprint_user.txt")

DEFAULT_CONSTRAINTS = "Optimize for retention."

# Minimal filled example sent with the system prompt.
BLUEPRINT_TEMPLATE = {
    "analysis": {
        "core_formula": "The concise formula name",
        "narrative_phases": [{"phase": "Setup", "purpose": "Hook", "duration_weight": "10%"}],
        "pacing_map": {
            "climax_points": ["Midpoint", "End"],
            "speed_strategy": "Fast start, slow middle",
            "pattern": "Linear",
        },
        "hook_hierarchy": {
            "main_hook": "The big promise",
            "micro_hooks": ["Visual", "Audio"],
            "psychological_anchor": "Curiosity",
        },
        "emotional_arc": {
            "triggers": ["Fear", "Relief"],
            "energy_flow": "Rising",
            "payoff_moment": "The reveal",
        },
        "linguistic_fingerprint": {
            "pov": "First person",
            "dominant_tones": ["Authoritative"],
            "vocabulary_style": "Simple",
        },
    },
    "audience_simulation": {
        "newbie_perspective": "Reaction...",
        "expert_perspective": "Reaction...",
        "hater_critique": "Reaction...",
        "final_verdict": "Go / No Go",
    },
    "pitfalls": ["Avoid X", "Don't do Y"],
    "critique": "Overall assessment...",
    "sections": [
        {
            "title": "Section Title",
            "type": "Hook / Body / CTA",
            "purpose": "Goal of section",
            "hook_tactic": "Technique used",
            "emotional_goal": "Feeling",
            "pacing_instruction": "Fast/Slow",
            "content_plan": "Detailed outline...",
            "word_count_target": 150,
        }
    ],
}

SYSTEM_PROMPT = (
    f"{_SYSTEM_PROMPT}\n\n"
    "CRITICAL OUTPUT RULE: Return ONLY a valid JSON object.\n"
    "- Follow the structure below exactly.\n"
    '- Do NOT output schema definitions (like "type": "object").\n'
    "- Just fill the data.\n\n"
    f"REQUIRED JSON STRUCTURE:\n{json.dumps(BLUEPRINT_TEMPLATE, indent=2)}"
)

_FINAL_REMINDER = "\n\nREMINDER: OUTPUT PURE JSON ONLY. START WITH '{'. NO MARKDOWN. NO REASONING TEXT."


def build_constraints(
    dna: ScriptDNA | None,
    scoring: ScoringTemplate | None,
    custom_structure_prompt: str = "",
) -> str:
    """Style rules from the DNA, the rubric as hard rules, then user overrides."""
    constraints = DEFAULT_CONSTRAINTS

    if dna is not None:
        analysis = dna.analysis
        constraints = f"STYLE & STRUCTURE GUIDE (FROM DNA: {sanitize_text(dna.name)}):\n"
        constraints += f"- Tone: {sanitize_text(analysis.get('tone'))}\n"
        constraints += f"- Structure: {json.dumps(analysis.get('structure_skeleton'), ensure_ascii=False)}\n"
        constraints += f"- Viral Triggers to use: {json.dumps(analysis.get('viral_triggers'), ensure_ascii=False)}\n"
        if dna.user_notes:
            constraints += f'\nUSER MANDATORY NOTES / CONSTRAINTS: "{sanitize_text(dna.user_notes)}"\n'

    if scoring is not None and scoring.criteria:
        constraints += "\n\nCRITICAL QUALITY STANDARDS (You MUST follow these rules):"
        for i, criterion in enumerate(scoring.criteria, start=1):
            constraints += f"\n{i}. {sanitize_text(criterion.name)}: {sanitize_text(criterion.description)}"
        constraints += "\nEnsure the generated blueprint explicitly addresses these standards."

    if custom_structure_prompt and custom_structure_prompt.strip():
        constraints += f"\n\nUSER OVERRIDE: {sanitize_text(custom_structure_prompt)}"

    return constraints


def _reference_block(pieces: list[ContentPiece], label: str) -> str:
    return "\n\n".join(
        f"[{label} REF #{i}]\n"
        f"Title: {sanitize_text(p.title)}\n"
        f"<content>\n{sanitize_text(p.script or p.description)}\n</content>\n"
        f"Feedback: {sanitize_text(p.comments) or 'N/A'}"
        for i, p in enumerate(pieces, start=1)
    )


def build_context(
    mode: str,
    draft: ContentPiece,
    virals: list[ContentPiece],
    flops: list[ContentPiece],
) -> str:
    """Tag the primary material and list references, saying so when absent."""
    draft_content = sanitize_text(draft.script or draft.description)

    if mode == "idea":
        context = (
            f'PRIMARY USER PROMPT / IDEA: Title: "{sanitize_text(draft.title)}"\n'
            f"<idea_concept>\n{draft_content}\n</idea_concept>\n"
            "TASK: Generate blueprint from this idea."
        )
    else:
        context = (
            "SOURCE MATERIAL (DRAFT TO REWRITE):\n"
            f"<source_material>\n{draft_content}\n</source_material>\n\n"
            "TASK: Restructure this material completely."
        )

    if virals:
        context += f"\n\n=== VIRAL REFERENCES (EMULATE THESE PATTERNS) ===\n{_reference_block(virals, 'VIRAL')}"
    else:
        context += "\n\n=== VIRAL REFERENCES ===\n(None provided. Rely on General Viral Logic.)"

    if flops:
        context += f"\n\n=== FLOP REFERENCES (AVOID THESE PATTERNS) ===\n{_reference_block(flops, 'FLOP')}"
    else:
        context += "\n\n=== FLOP REFERENCES ===\n(None provided. Rely on General Flop Avoidance Logic.)"

    return context


def build_sections(raw_sections: list, dna: ScriptDNA | None) -> list[BlueprintSection]:
    """Assign ids and attach the positionally matching DNA skeleton entry.

    Legacy string skeleton entries are never attached.
    """
    skeleton = dna.structure_skeleton if dna is not None else []
    ids = section_ids(len(raw_sections))
    sections: list[BlueprintSection] = []

    for i, raw in enumerate(raw_sections):
        data = raw if isinstance(raw, dict) else {"title": str(raw)}
        section = BlueprintSection.from_dict(data, section_id=ids[i])
        if i < len(skeleton) and isinstance(skeleton[i], dict):
            section.dna_section_detail = skeleton[i]
        sections.append(section)

    return sections


@timed_node("blueprint", "ai")
async def generate_script_blueprint(
    draft: ContentPiece,
    virals: list[ContentPiece],
    flops: list[ContentPiece],
    target_word_count: int,
    ctx: GenerationContext,
    options: BlueprintOptions | None = None,
) -> ScriptBlueprint:
    """Generate a blueprint for *draft*.

    Raises ``ResponseParseError`` if the output is not JSON even after
    repair, and ``ResponseStructureError`` if it has no ``sections`` list.
    """
    options = options or BlueprintOptions()
    dna = options.selected_dna

    constraints = build_constraints(dna, options.scoring_criteria, options.custom_structure_prompt)
    context = build_context(options.mode, draft, virals, flops)

    log.info("Blueprint input: mode=%s draft=%d chars virals=%d flops=%d dna=%s",
             options.mode, len(draft.script or draft.description or ""),
             len(virals), len(flops), dna.id if dna else None)

    prompt = _USER_TEMPLATE.format(
        context=context,
        constraints=constraints,
        word_count=target_word_count,
    )
    prompt += language_instruction(ctx.language) + _FINAL_REMINDER

    response_text = await with_timeout(
        ctx.client.generate(ctx.model_id, SYSTEM_PROMPT, prompt, ctx.credential, True),
        ctx.call_timeout,
        "Blueprint generation",
    )

    parsed = unwrap_schema(parse_ai_json(response_text, label="blueprint response"))

    raw_sections = parsed.get("sections") if isinstance(parsed, dict) else None
    if not isinstance(raw_sections, list):
        log.error("Invalid blueprint structure: %.500s", response_text)
        raise ResponseStructureError(
            "AI returned JSON, but it is missing the 'sections' array. "
            "The generation failed to follow the template.",
            parsed,
        )

    sections = build_sections(raw_sections, dna)
    log.info("Blueprint generated with %d section(s)", len(sections))

    return ScriptBlueprint(
        sections=sections,
        analysis=parsed.get("analysis") if isinstance(parsed.get("analysis"), dict) else {},
        audience_simulation=(
            parsed.get("audience_simulation")
            if isinstance(parsed.get("audience_simulation"), dict) else {}
        ),
        pitfalls=parsed.get("pitfalls") if isinstance(parsed.get("pitfalls"), list) else [],
        critique=str(parsed.get("critique") or ""),
    )
