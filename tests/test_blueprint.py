import json
import re

import pytest

from dna_analyzer.errors import ResponseParseError, ResponseStructureError
from dna_analyzer.models import (
    BlueprintOptions,
    ContentPiece,
    ScoringCriterion,
    ScoringTemplate,
    ScriptDNA,
)
from dna_analyzer.nodes.blueprint import (
    DEFAULT_CONSTRAINTS,
    build_constraints,
    build_context,
    generate_script_blueprint,
)

DRAFT = ContentPiece(title="Why rent beats buying", script="My draft about renting.")


async def _generate(ctx, response_options=None, virals=(), flops=()):
    return await generate_script_blueprint(
        DRAFT, list(virals), list(flops), 900, ctx, response_options,
    )


@pytest.mark.asyncio
async def test_minimal_response_gets_section_ids(make_ctx):
    ctx, _ = make_ctx(['{"sections":[{"title":"Hook"}]}'])

    blueprint = await _generate(ctx)

    assert len(blueprint.sections) == 1
    section = blueprint.sections[0]
    assert re.fullmatch(r"bp-\d+-0", section.id)
    assert section.title == "Hook"
    assert section.word_count_target == 0
    assert blueprint.analysis == {}
    assert blueprint.pitfalls == []


@pytest.mark.asyncio
async def test_section_ids_are_unique_and_indexed(make_ctx):
    ctx, _ = make_ctx([json.dumps({"sections": [{"title": t} for t in ("A", "B", "C")]})])

    blueprint = await _generate(ctx)

    ids = [s.id for s in blueprint.sections]
    assert len(set(ids)) == 3
    assert [i.rsplit("-", 1)[1] for i in ids] == ["0", "1", "2"]


@pytest.mark.asyncio
async def test_missing_sections_raises(make_ctx):
    ctx, _ = make_ctx(['{"analysis": {"core_formula": "x"}, "critique": "fine"}'])

    with pytest.raises(ResponseStructureError, match="sections"):
        await _generate(ctx)


@pytest.mark.asyncio
async def test_non_list_sections_raises(make_ctx):
    ctx, _ = make_ctx(['{"sections": {"title": "Hook"}}'])

    with pytest.raises(ResponseStructureError):
        await _generate(ctx)


@pytest.mark.asyncio
async def test_unrecoverable_schema_echo_fails_structure_check(make_ctx):
    echo = {
        "type": "object",
        "properties": {
            "analysis": {"type": "object", "properties": {"core_formula": {"type": "string"}}},
            "sections": {"type": "array"},
        },
    }
    ctx, _ = make_ctx([json.dumps(echo)])

    with pytest.raises(ResponseStructureError):
        await _generate(ctx)


@pytest.mark.asyncio
async def test_recoverable_schema_echo_is_unwrapped(make_ctx):
    echo = {"properties": {"analysis": {"core_formula": "PAS"}, "sections": [{"title": "Hook"}]}}
    ctx, _ = make_ctx([json.dumps(echo)])

    blueprint = await _generate(ctx)

    assert blueprint.analysis == {"core_formula": "PAS"}
    assert blueprint.sections[0].title == "Hook"


@pytest.mark.asyncio
async def test_root_wrapper_and_repair_work_together(make_ctx):
    raw = 'Here you go:\n```json\n{"blueprint": {"sections": [{"title": "Hook", "word_count_target": "120",},],}}\n```'
    ctx, _ = make_ctx([raw])

    blueprint = await _generate(ctx)

    assert blueprint.sections[0].title == "Hook"
    assert blueprint.sections[0].word_count_target == 120


@pytest.mark.asyncio
async def test_unparseable_response_raises_parse_error(make_ctx):
    ctx, _ = make_ctx(["no json"])

    with pytest.raises(ResponseParseError):
        await _generate(ctx)


@pytest.mark.asyncio
async def test_negative_word_count_is_clamped_and_extra_keys_kept(make_ctx):
    ctx, _ = make_ctx([json.dumps({"sections": [
        {"title": "Hook", "word_count_target": -40, "visual_cue": "zoom", "id": "model-id"},
    ]})])

    blueprint = await _generate(ctx)
    section = blueprint.sections[0]

    assert section.word_count_target == 0
    assert section.extra == {"visual_cue": "zoom"}
    assert section.id != "model-id"
    assert section.to_dict()["visual_cue"] == "zoom"


@pytest.mark.asyncio
@pytest.mark.parametrize("target", ["Infinity", "-Infinity", "NaN", "1e400"])
async def test_non_finite_word_count_falls_back_to_zero(make_ctx, target):
    ctx, _ = make_ctx(['{"sections": [{"title": "Hook", "word_count_target": %s}]}' % target])

    blueprint = await _generate(ctx)

    assert blueprint.sections[0].title == "Hook"
    assert blueprint.sections[0].word_count_target == 0


@pytest.mark.asyncio
async def test_dna_skeleton_detail_attached_positionally(make_ctx):
    dna = ScriptDNA(id="dna-1", name="Finance", analysis={
        "tone": "urgent",
        "structure_skeleton": [
            {"section_name": "Hook", "pacing": "fast"},
            "Legacy body",
            {"section_name": "Payoff"},
        ],
    })
    sections = [{"title": t} for t in ("Hook", "Body", "Payoff", "CTA")]
    ctx, _ = make_ctx([json.dumps({"sections": sections})])

    blueprint = await _generate(ctx, BlueprintOptions(selected_dna=dna))
    details = [s.dna_section_detail for s in blueprint.sections]

    assert details == [
        {"section_name": "Hook", "pacing": "fast"},
        None,
        {"section_name": "Payoff"},
        None,
    ]


@pytest.mark.asyncio
async def test_legacy_skeleton_attaches_nothing(make_ctx):
    dna = ScriptDNA(id="dna-1", analysis={"structure_skeleton": ["Hook", "Body"]})
    ctx, _ = make_ctx([json.dumps({"sections": [{"title": "Hook"}, {"title": "Body"}]})])

    blueprint = await _generate(ctx, BlueprintOptions(selected_dna=dna))

    assert all(s.dna_section_detail is None for s in blueprint.sections)


@pytest.mark.asyncio
async def test_prompt_contains_example_structure_and_json_mode(make_ctx):
    ctx, client = make_ctx(['{"sections": []}'])

    blueprint = await _generate(ctx)

    call = client.calls[0]
    assert blueprint.sections == []
    assert call["json_mode"] is True
    assert '"word_count_target": 150' in call["system_prompt"]
    assert "approximately 900 words" in call["user_prompt"]
    assert "English" in call["user_prompt"]


def test_constraints_default_when_nothing_selected():
    assert build_constraints(None, None) == DEFAULT_CONSTRAINTS


def test_constraints_include_dna_rubric_and_override():
    dna = ScriptDNA(
        id="d", name="Money",
        analysis={"tone": "urg\x1bent", "structure_skeleton": ["Hook"], "viral_triggers": ["shock"]},
        user_notes="Never swear\x00",
    )
    rubric = ScoringTemplate(name="Rubric", criteria=(
        ScoringCriterion("Clarity", "One idea per sentence"),
        ScoringCriterion("Proof", "Cite a number"),
    ))

    text = build_constraints(dna, rubric, "Keep it under a minute")

    assert "FROM DNA: Money" in text
    assert "- Tone: urgent" in text
    assert '- Structure: ["Hook"]' in text
    assert '"Never swear"' in text
    assert "\n1. Clarity: One idea per sentence" in text
    assert "\n2. Proof: Cite a number" in text
    assert text.endswith("USER OVERRIDE: Keep it under a minute")


def test_context_states_missing_references_explicitly():
    text = build_context("idea", DRAFT, [], [])

    assert "<idea_concept>\nMy draft about renting.\n</idea_concept>" in text
    assert "(None provided. Rely on General Viral Logic.)" in text
    assert "(None provided. Rely on General Flop Avoidance Logic.)" in text


def test_context_rewrite_mode_and_labeled_references():
    viral = ContentPiece(title="Hit", script="", description="desc only", comments="loved it")
    flop = ContentPiece(title="Miss", script="dull")

    text = build_context("rewrite", DRAFT, [viral], [flop])

    assert "<source_material>\nMy draft about renting.\n</source_material>" in text
    assert "[VIRAL REF #1]\nTitle: Hit\n<content>\ndesc only\n</content>\nFeedback: loved it" in text
    assert "[FLOP REF #1]\nTitle: Miss\n<content>\ndull\n</content>\nFeedback: N/A" in text


def test_unknown_mode_is_rejected():
    with pytest.raises(ValueError):
        BlueprintOptions(mode="remix")
