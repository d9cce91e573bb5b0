import json

import pytest

from dna_analyzer.errors import ResponseParseError, ResponseStructureError
from dna_analyzer.models import ContentPiece, ScriptDNA
from dna_analyzer.nodes import dna_extraction
from dna_analyzer.nodes.dna_extraction import (
    average_word_count,
    extract_script_dna,
    refine_script_dna,
    word_count_range,
)

from conftest import dna_json, piece


def test_word_count_range_rounds_to_fifty():
    pieces = [piece("a", 38), piece("b", 61), piece("c", 145)]
    assert word_count_range(pieces) == "0-150"


def test_word_count_range_exact_multiples_stay_put():
    assert word_count_range([piece("a", 100), piece("b", 200)]) == "100-200"


def test_average_word_count_rounds_to_nearest_integer():
    pieces = [piece("a", 38), piece("b", 61), piece("c", 145)]
    assert average_word_count(pieces) == 81


def test_average_word_count_half_rounds_up():
    assert average_word_count([piece("a", 1), piece("b", 2)]) == 2


def test_empty_reference_set_uses_defaults():
    assert word_count_range([]) == "1000-2000"
    assert average_word_count([]) == 1500


def test_word_count_splits_on_any_whitespace():
    p = ContentPiece(title="t", script="  one\ttwo\n\nthree   four ")
    assert p.word_count() == 4


@pytest.mark.asyncio
async def test_small_set_uses_single_call_and_observed_range(make_ctx):
    response = dna_json("Money Hooks", tone="urgent", target_word_count_range="9999")
    ctx, client = make_ctx([response])
    virals = [piece("V1", 120, url="https://v/1"), piece("V2", 180, url="https://v/2")]

    dna = await extract_script_dna(virals, [piece("F1", 50)], ctx)

    assert len(client.calls) == 1
    assert dna.name == "Money Hooks"
    assert dna.analysis["tone"] == "urgent"
    assert dna.analysis["target_word_count_range"] == "100-200"
    assert dna.source_urls == ["https://v/1", "https://v/2"]
    assert dna.id.startswith("dna-")


@pytest.mark.asyncio
async def test_large_set_batches_then_synthesizes_with_average_target(make_ctx):
    def respond(system, user):
        if "raw DNA analyses" in user:
            return dna_json("Synthesized", target_word_count_range="50-60",
                            structure_skeleton=[{"section_name": "Hook"}])
        return dna_json("Partial")

    ctx, client = make_ctx(respond)
    virals = [piece(f"V{i}", words, url=f"https://v/{i}")
              for i, words in enumerate([38, 61, 145, 100, 200], start=1)]
    progress = []

    dna = await extract_script_dna(
        virals, [], ctx,
        on_progress=lambda cur, total: progress.append((cur, total)),
        delay_range=(0, 0),
    )

    # 3 batches + 1 synthesis
    assert len(client.calls) == 4
    assert dna.name == "Synthesized"
    assert dna.analysis["target_word_count_range"] == "109"
    assert dna.id.startswith("dna-synthesized-")
    assert dna.source_urls == [f"https://v/{i}" for i in range(1, 6)]
    assert progress[0] == (0, 3) and progress[-1] == (3, 3)


@pytest.mark.asyncio
async def test_batch_failure_fails_the_extraction(make_ctx):
    def respond(system, user):
        if "Title: V3\n" in user:
            raise RuntimeError("rate limited")
        return dna_json()

    ctx, client = make_ctx(respond)
    virals = [piece(f"V{i}", 10) for i in range(1, 5)]

    with pytest.raises(RuntimeError, match="rate limited"):
        await extract_script_dna(virals, [], ctx, delay_range=(0, 0))
    assert not any("raw DNA analyses" in c["user_prompt"] for c in client.calls)


@pytest.mark.asyncio
async def test_fenced_response_with_trailing_comma_is_recovered(make_ctx):
    ctx, _ = make_ctx(['```json\n{"name":"X",}\n```'])

    dna = await extract_script_dna([piece("V1", 10)], [], ctx)

    assert dna.name == "X"
    assert dna.analysis == {"target_word_count_range": "0-50"}


@pytest.mark.asyncio
async def test_dna_wrapper_key_is_unwrapped(make_ctx):
    ctx, _ = make_ctx([json.dumps({"dna": {"name": "Wrapped", "analysis": {"tone": "calm"}}})])

    dna = await extract_script_dna([piece("V1", 10)], [], ctx)

    assert dna.name == "Wrapped"
    assert dna.analysis["tone"] == "calm"


@pytest.mark.asyncio
async def test_unparseable_response_raises(make_ctx):
    ctx, _ = make_ctx(["I cannot help with that."])

    with pytest.raises(ResponseParseError):
        await extract_script_dna([piece("V1", 10)], [], ctx)


@pytest.mark.asyncio
async def test_json_array_response_is_rejected(make_ctx):
    ctx, _ = make_ctx(['[{"name": "X"}]'])

    with pytest.raises(ResponseStructureError):
        await extract_script_dna([piece("V1", 10)], [], ctx)


@pytest.mark.asyncio
@pytest.mark.parametrize("analysis", ["fast and punchy", ["tone", "pacing"], 42])
async def test_non_object_analysis_is_a_structure_error(make_ctx, analysis):
    ctx, _ = make_ctx([json.dumps({"name": "X", "analysis": analysis})])

    with pytest.raises(ResponseStructureError, match="analysis"):
        await extract_script_dna([piece("V1", 10)], [], ctx)


def test_from_dict_tolerates_odd_field_types():
    dna = ScriptDNA.from_dict({"id": "d", "analysis": "text", "source_urls": "https://v/1"})

    assert dna.analysis == {}
    assert dna.source_urls == ["https://v/1"]


@pytest.mark.asyncio
async def test_custom_prompt_replaces_standard_instructions(make_ctx):
    ctx, client = make_ctx([dna_json()])

    await extract_script_dna([piece("V1", 10)], [], ctx, custom_prompt="Focus on\x00 humor")

    prompt = client.calls[0]["user_prompt"]
    assert "USER CUSTOM INSTRUCTIONS:\nFocus on humor" in prompt
    assert "DEEP STRUCTURE ANALYSIS" not in prompt


@pytest.mark.asyncio
async def test_prompts_are_sanitized_and_carry_language(make_ctx):
    ctx, client = make_ctx([dna_json()], language="Vietnamese")
    virals = [ContentPiece(title="Ti\x07tle", script="one two\x1b three", comments="wow\x00")]

    await extract_script_dna(virals, [], ctx)

    prompt = client.calls[0]["user_prompt"]
    assert "Title: Title" in prompt
    assert "Transcript: one two three" in prompt
    assert "Feedback: wow" in prompt
    assert "Vietnamese" in prompt
    assert "\x07" not in prompt and "\x1b" not in prompt and "\x00" not in prompt


@pytest.mark.asyncio
async def test_refinement_preserves_id_and_merges_urls(make_ctx):
    existing = ScriptDNA(
        id="dna-123",
        name="Old",
        niche="Finance",
        analysis={"tone": "calm", "pacing": "slow"},
        source_urls=["https://v/1", "https://v/2"],
    )
    ctx, client = make_ctx([dna_json("Evolved", pacing="cut every 2s")])
    new_virals = [piece("N1", 10, url="https://v/2"), piece("N2", 10, url="https://v/3"),
                  piece("N3", 10)]

    refined = await refine_script_dna(existing, new_virals, [], ctx)

    assert refined.id == "dna-123"
    assert refined.name == "Evolved"
    assert refined.analysis == {"tone": "calm", "pacing": "cut every 2s"}
    assert refined.source_urls == ["https://v/1", "https://v/2", "https://v/3"]
    assert '"tone": "calm"' in client.calls[0]["user_prompt"]
    assert "[NEW VIRAL #1]" in client.calls[0]["user_prompt"]
    assert existing.analysis == {"tone": "calm", "pacing": "slow"}


@pytest.mark.asyncio
async def test_refinement_of_dna_without_id_gets_evolved_id(make_ctx):
    ctx, _ = make_ctx([dna_json("")])

    refined = await refine_script_dna(ScriptDNA(id="", name="Keep"), [piece("N", 5)], [], ctx)

    assert refined.id.startswith("dna-evolved-")
    assert refined.name == "Keep"


@pytest.mark.asyncio
async def test_refinement_failure_is_logged_and_reraised(make_ctx, caplog):
    ctx, _ = make_ctx(["not json"])

    with pytest.raises(ResponseParseError):
        await refine_script_dna(ScriptDNA(id="dna-9"), [piece("N", 5)], [], ctx)
    assert "DNA refinement failed for dna-9" in caplog.text


def test_module_batch_size_is_two():
    assert dna_extraction.batching.BATCH_SIZE == 2
