import logging
import os
from typing import Optional

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .errors import (
    ConfigurationError,
    GenerationError,
    GenerationTimeout,
    ResponseParseError,
    ResponseStructureError,
)
from .models import (
    BlueprintOptions,
    ContentPiece,
    GenerationContext,
    ScoringCriterion,
    ScoringTemplate,
    ScriptDNA,
)
from .nodes import niche_detection, scoring
from .nodes.dna_extraction import refine_script_dna
from .nodes.openrouter_client import ContentGenerator, OpenRouterClient
from .pipeline import run_blueprint, run_dna_extraction

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
log = logging.getLogger(__name__)

app = FastAPI(title="DNA Analyzer", description="Extracts viral script DNA and builds script blueprints")

OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
MODEL_NAME = os.getenv("MODEL_NAME", "google/gemini-3-flash-preview")
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "")
OUTPUT_LANGUAGE = os.getenv("OUTPUT_LANGUAGE", "English")
GENERATION_TIMEOUT_S = float(os.environ["GENERATION_TIMEOUT_S"]) if os.getenv("GENERATION_TIMEOUT_S") else None

_client = OpenRouterClient(base_url=OPENROUTER_BASE_URL)


def get_generation_client() -> ContentGenerator:
    return _client


# ----------------------------------------------------------------------
# Request / response bodies
# ----------------------------------------------------------------------

class ContentPieceIn(BaseModel):
    title: str = ""
    script: str = ""
    description: str = ""
    comments: str = ""
    url: str = ""

    def to_piece(self) -> ContentPiece:
        return ContentPiece(**self.model_dump())


class ScriptDNAIn(BaseModel):
    id: str = ""
    name: str = ""
    niche: str = ""
    analysis: dict = {}
    source_urls: list[str] = []
    user_notes: Optional[str] = None
    raw_transcript_summary: str = ""

    def to_dna(self) -> ScriptDNA:
        return ScriptDNA.from_dict(self.model_dump())


class ScoringCriterionIn(BaseModel):
    name: str
    description: str = ""


class ScoringTemplateIn(BaseModel):
    name: str = ""
    criteria: list[ScoringCriterionIn] = []

    def to_template(self) -> ScoringTemplate:
        return ScoringTemplate(
            name=self.name,
            criteria=tuple(ScoringCriterion(c.name, c.description) for c in self.criteria),
        )


class GenerationSettings(BaseModel):
    api_key: str = ""
    model_id: str = ""
    language: str = ""


class ExtractRequest(GenerationSettings):
    virals: list[ContentPieceIn]
    flops: list[ContentPieceIn] = []
    custom_prompt: str = ""


class RefineRequest(GenerationSettings):
    existing_dna: ScriptDNAIn
    virals: list[ContentPieceIn]
    flops: list[ContentPieceIn] = []
    custom_prompt: str = ""


class BlueprintRequest(GenerationSettings):
    mode: str = "idea"
    draft: ContentPieceIn
    virals: list[ContentPieceIn] = []
    flops: list[ContentPieceIn] = []
    target_word_count: int = Field(default=1500, ge=0)
    custom_structure_prompt: str = ""
    selected_dna: Optional[ScriptDNAIn] = None
    scoring_criteria: Optional[ScoringTemplateIn] = None


class NicheRequest(GenerationSettings):
    scripts: list[ContentPieceIn]


class ScoreRequest(GenerationSettings):
    script: str
    mode: str = "dna"
    dna: Optional[ScriptDNAIn] = None
    template: Optional[ScoringTemplateIn] = None


def _context(body: GenerationSettings, client: ContentGenerator) -> GenerationContext:
    credential = body.api_key or OPENROUTER_API_KEY
    if not credential:
        raise HTTPException(status_code=401, detail="API key is not configured")
    return GenerationContext(
        client=client,
        model_id=body.model_id or MODEL_NAME,
        credential=credential,
        language=body.language or OUTPUT_LANGUAGE,
        call_timeout=GENERATION_TIMEOUT_S,
    )


# ----------------------------------------------------------------------
# Error mapping
# ----------------------------------------------------------------------

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    body = await request.body()
    log.error("422 validation error on %s %s", request.method, request.url.path)
    log.error("Request body: %s", body.decode(errors="replace")[:2000])
    log.error("Validation errors: %s", exc.errors())
    return JSONResponse(status_code=422, content={"detail": exc.errors(), "body_preview": body.decode(errors="replace")[:500]})


@app.exception_handler(ResponseParseError)
async def parse_error_handler(request: Request, exc: ResponseParseError):
    log.error("Unparseable model output on %s: %s", request.url.path, exc.raw_text[:2000])
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(ResponseStructureError)
async def structure_error_handler(request: Request, exc: ResponseStructureError):
    log.error("Malformed model output on %s: %.2000s", request.url.path, exc.payload)
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(GenerationTimeout)
async def timeout_handler(request: Request, exc: GenerationTimeout):
    log.error("Generation timed out on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=504, content={"detail": str(exc)})


@app.exception_handler(GenerationError)
async def generation_error_handler(request: Request, exc: GenerationError):
    log.error("Generation failed on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(httpx.HTTPError)
async def upstream_error_handler(request: Request, exc: httpx.HTTPError):
    log.error("Upstream request failed on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=502, content={"detail": f"Upstream request failed: {exc}"})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# ----------------------------------------------------------------------
# Endpoints
# ----------------------------------------------------------------------

@app.post("/dna/extract")
async def extract_dna(request: ExtractRequest, client: ContentGenerator = Depends(get_generation_client)):
    log.info("POST /dna/extract: virals=%d flops=%d", len(request.virals), len(request.flops))
    ctx = _context(request, client)

    def on_progress(current: int, total: int) -> None:
        log.info("DNA extraction progress: %d/%d", current, total)

    run = await run_dna_extraction(
        [v.to_piece() for v in request.virals],
        [f.to_piece() for f in request.flops],
        ctx,
        custom_prompt=request.custom_prompt,
        on_progress=on_progress,
    )
    return {"dna": run.dna.to_dict(), "report": run.report}


@app.post("/dna/refine")
async def refine_dna(request: RefineRequest, client: ContentGenerator = Depends(get_generation_client)):
    log.info("POST /dna/refine: dna=%s virals=%d", request.existing_dna.id, len(request.virals))
    ctx = _context(request, client)
    dna = await refine_script_dna(
        request.existing_dna.to_dna(),
        [v.to_piece() for v in request.virals],
        [f.to_piece() for f in request.flops],
        ctx,
        custom_prompt=request.custom_prompt,
    )
    return {"dna": dna.to_dict()}


@app.post("/blueprint")
async def generate_blueprint(request: BlueprintRequest, client: ContentGenerator = Depends(get_generation_client)):
    log.info("POST /blueprint: mode=%s target=%d", request.mode, request.target_word_count)
    ctx = _context(request, client)
    options = BlueprintOptions(
        mode=request.mode,
        custom_structure_prompt=request.custom_structure_prompt,
        selected_dna=request.selected_dna.to_dna() if request.selected_dna else None,
        scoring_criteria=request.scoring_criteria.to_template() if request.scoring_criteria else None,
    )
    run = await run_blueprint(
        request.draft.to_piece(),
        [v.to_piece() for v in request.virals],
        [f.to_piece() for f in request.flops],
        request.target_word_count,
        ctx,
        options,
    )
    return {"blueprint": run.blueprint.to_dict(), "report": run.report}


@app.post("/niches")
async def detect_niches(request: NicheRequest, client: ContentGenerator = Depends(get_generation_client)):
    log.info("POST /niches: scripts=%d", len(request.scripts))
    ctx = _context(request, client)
    results = await niche_detection.detect_script_niches([s.to_piece() for s in request.scripts], ctx)
    compat = niche_detection.analyze_niche_compatibility(results)
    return {
        "results": [
            {"script_index": r.script_index, "niche": r.niche, "tone": r.tone}
            for r in results
        ],
        "majority_niche": compat.majority_niche,
        "matched_indices": compat.matched_indices,
        "mismatched_indices": compat.mismatched_indices,
    }


@app.post("/score")
async def score_script(request: ScoreRequest, client: ContentGenerator = Depends(get_generation_client)):
    log.info("POST /score: mode=%s script_length=%d", request.mode, len(request.script))
    ctx = _context(request, client)
    result = await scoring.analyze_script_score(
        request.script,
        request.mode,
        ctx,
        dna=request.dna.to_dna() if request.dna else None,
        template=request.template.to_template() if request.template else None,
    )
    return {
        "total_score": result.total_score,
        "breakdown": result.breakdown,
        "overall_feedback": result.overall_feedback,
        "timestamp": result.timestamp,
        "source_info": result.source_info,
    }


@app.get("/health")
async def health():
    return {"status": "ok", "model": MODEL_NAME}
