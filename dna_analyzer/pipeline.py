"""Pipeline orchestrator.

Runs DNA extraction or blueprint generation inside a metrics collection and
returns the result together with a per-stage timing report.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from .models import BlueprintOptions, ContentPiece, GenerationContext, ScriptBlueprint, ScriptDNA
from .nodes import blueprint, dna_extraction
from .nodes.batching import STAGGER_DELAY_S, ProgressCallback
from .timing import build_report, collect_metrics

log = logging.getLogger(__name__)


@dataclass
class DNARun:
    dna: ScriptDNA
    report: dict = field(default_factory=dict)


@dataclass
class BlueprintRun:
    blueprint: ScriptBlueprint
    report: dict = field(default_factory=dict)


async def run_dna_extraction(
    virals: list[ContentPiece],
    flops: list[ContentPiece],
    ctx: GenerationContext,
    custom_prompt: str | None = None,
    on_progress: Optional[ProgressCallback] = None,
    delay_range: tuple[float, float] = STAGGER_DELAY_S,
) -> DNARun:
    """Extract a DNA and report how long each stage took.

    Batch stages overlap, so the summed stage time can exceed
    ``wall_duration_ms``.
    """
    t0 = time.monotonic_ns()
    with collect_metrics() as metrics:
        dna = await dna_extraction.extract_script_dna(
            virals, flops, ctx,
            custom_prompt=custom_prompt,
            on_progress=on_progress,
            delay_range=delay_range,
        )
    report = build_report(metrics)
    report["wall_duration_ms"] = (time.monotonic_ns() - t0) // 1_000_000

    log.info(
        "DNA extraction complete: %s (%d skeleton sections, %d source urls) | "
        "wall=%dms ai=%dms",
        dna.id, len(dna.structure_skeleton), len(dna.source_urls),
        report["wall_duration_ms"], report["ai_duration_ms"],
    )
    return DNARun(dna=dna, report=report)


async def run_blueprint(
    draft: ContentPiece,
    virals: list[ContentPiece],
    flops: list[ContentPiece],
    target_word_count: int,
    ctx: GenerationContext,
    options: BlueprintOptions | None = None,
) -> BlueprintRun:
    """Generate a blueprint and report its stage timing."""
    t0 = time.monotonic_ns()
    with collect_metrics() as metrics:
        result = await blueprint.generate_script_blueprint(
            draft, virals, flops, target_word_count, ctx, options,
        )
    report = build_report(metrics)
    report["wall_duration_ms"] = (time.monotonic_ns() - t0) // 1_000_000

    log.info("Blueprint complete: %d sections | wall=%dms",
             len(result.sections), report["wall_duration_ms"])
    return BlueprintRun(blueprint=result, report=report)
