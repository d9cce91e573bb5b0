"""Data models for the DNA extraction and blueprint pipelines."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Optional


CREATION_MODES = frozenset(["idea", "rewrite"])


def dedupe_urls(urls) -> list[str]:
    """Order-preserving dedupe that drops empty entries."""
    if isinstance(urls, str):
        urls = [urls]
    seen: dict[str, None] = {}
    for url in urls or []:
        if isinstance(url, str) and url.strip():
            seen.setdefault(url.strip(), None)
    return list(seen)


def non_negative_int(value: Any, default: int = 0) -> int:
    """Coerce a model-supplied number ("150", 149.6, -3) to an int >= 0.

    Anything non-numeric or non-finite (NaN, Infinity) becomes *default*.
    """
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return default
    return max(0, number)


@dataclass(frozen=True)
class ContentPiece:
    """A reference script supplied by the caller. Never modified."""

    title: str
    script: str
    description: str = ""
    comments: str = ""
    url: str = ""

    def word_count(self) -> int:
        return len((self.script or "").split())


@dataclass
class ScriptDNA:
    """Extracted or synthesized style profile.

    ``analysis`` stays a plain dict because its shape is whatever the
    model returned (tone, pacing, structure_skeleton, ...).
    """

    id: str
    name: str = ""
    niche: str = ""
    analysis: dict = field(default_factory=dict)
    source_urls: list[str] = field(default_factory=list)
    user_notes: Optional[str] = None
    raw_transcript_summary: str = ""

    def __post_init__(self) -> None:
        self.source_urls = dedupe_urls(self.source_urls)
        self.analysis = dict(self.analysis) if isinstance(self.analysis, dict) else {}

    @property
    def structure_skeleton(self) -> list:
        skeleton = self.analysis.get("structure_skeleton")
        return skeleton if isinstance(skeleton, list) else []

    @classmethod
    def from_dict(cls, data: dict, *, default_id: str = "") -> ScriptDNA:
        return cls(
            id=str(data.get("id") or default_id),
            name=str(data.get("name") or ""),
            niche=str(data.get("niche") or ""),
            analysis=data.get("analysis") or {},
            source_urls=data.get("source_urls") or [],
            user_notes=data.get("user_notes"),
            raw_transcript_summary=str(data.get("raw_transcript_summary") or ""),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "niche": self.niche,
            "analysis": self.analysis,
            "source_urls": list(self.source_urls),
            "user_notes": self.user_notes,
            "raw_transcript_summary": self.raw_transcript_summary,
        }


@dataclass
class BlueprintSection:
    """One planned section of a script blueprint.

    ``generated_content`` is filled later by the writer stage.
    Keys the model added beyond the known fields are kept in ``extra``.
    """

    id: str
    title: str = ""
    type: str = ""
    purpose: str = ""
    hook_tactic: str = ""
    emotional_goal: str = ""
    pacing_instruction: str = ""
    content_plan: str = ""
    word_count_target: int = 0
    dna_section_detail: Optional[dict] = None
    generated_content: Optional[str] = None
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict, *, section_id: str) -> BlueprintSection:
        known = {f.name for f in fields(cls)} - {"id", "extra"}
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in data.items():
            if key == "id":
                continue
            if key in known:
                kwargs[key] = value
            else:
                extra[key] = value
        for key in ("title", "type", "purpose", "hook_tactic", "emotional_goal",
                    "pacing_instruction", "content_plan"):
            if key in kwargs and not isinstance(kwargs[key], str):
                kwargs[key] = "" if kwargs[key] is None else str(kwargs[key])
        kwargs["word_count_target"] = non_negative_int(kwargs.get("word_count_target"))
        return cls(id=section_id, extra=extra, **kwargs)

    def to_dict(self) -> dict:
        result = dict(self.extra)
        result.update({
            "id": self.id,
            "title": self.title,
            "type": self.type,
            "purpose": self.purpose,
            "hook_tactic": self.hook_tactic,
            "emotional_goal": self.emotional_goal,
            "pacing_instruction": self.pacing_instruction,
            "content_plan": self.content_plan,
            "word_count_target": self.word_count_target,
        })
        if self.dna_section_detail is not None:
            result["dna_section_detail"] = self.dna_section_detail
        if self.generated_content is not None:
            result["generated_content"] = self.generated_content
        return result


@dataclass
class ScriptBlueprint:
    """Structured plan for a script, produced per generation call."""

    sections: list[BlueprintSection]
    analysis: dict = field(default_factory=dict)
    audience_simulation: dict = field(default_factory=dict)
    pitfalls: list = field(default_factory=list)
    critique: str = ""

    def to_dict(self) -> dict:
        return {
            "analysis": self.analysis,
            "audience_simulation": self.audience_simulation,
            "pitfalls": self.pitfalls,
            "critique": self.critique,
            "sections": [s.to_dict() for s in self.sections],
        }


@dataclass(frozen=True)
class ScoringCriterion:
    name: str
    description: str = ""


@dataclass(frozen=True)
class ScoringTemplate:
    name: str
    criteria: tuple[ScoringCriterion, ...] = ()


@dataclass
class BlueprintOptions:
    """Caller-selected knobs for blueprint generation."""

    mode: str = "idea"  # "idea" | "rewrite"
    custom_structure_prompt: str = ""
    selected_dna: Optional[ScriptDNA] = None
    scoring_criteria: Optional[ScoringTemplate] = None

    def __post_init__(self) -> None:
        if self.mode not in CREATION_MODES:
            raise ValueError(f"Unknown creation mode: {self.mode!r}")


@dataclass
class GenerationContext:
    """Everything a stage needs to talk to the model.

    Built once at the application entry point and passed down; nothing in
    the core reads configuration from the environment.
    """

    client: Any  # ContentGenerator
    model_id: str
    credential: str
    language: str = "English"
    call_timeout: Optional[float] = None  # seconds; None disables the timeout


@dataclass(frozen=True)
class NicheResult:
    script_index: int  # 1-based, matches the prompt numbering
    niche: str
    tone: str


@dataclass
class NicheCompatibility:
    majority_niche: str = ""
    matched_indices: list[int] = field(default_factory=list)
    mismatched_indices: list[int] = field(default_factory=list)


@dataclass
class ScoringResult:
    total_score: float
    breakdown: list[dict] = field(default_factory=list)
    overall_feedback: str = ""
    timestamp: int = 0
    source_info: str = ""


@dataclass
class StageMetrics:
    """Timing and stats for one pipeline stage."""

    stage_name: str
    stage_type: str  # "programmatic" | "ai"
    duration_ms: int = 0
    items_processed: int = 0
