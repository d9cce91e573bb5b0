"""Prompt assembly helpers shared by the AI stages.

Prompt wording lives in ``dna_analyzer/prompts/*.txt`` and is loaded once at
import time, as ``str.format`` templates.
"""

from __future__ import annotations

from pathlib import Path

from ..models import ContentPiece
from .sanitizer import sanitize_text

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

JSON_ONLY_REMINDER = "\n\nREMINDER: OUTPUT PURE JSON ONLY. NO MARKDOWN. START WITH '{'."


def load_prompt(name: str) -> str:
    return (PROMPTS_DIR / name).read_text(encoding="utf-8").strip()


def language_instruction(language: str) -> str:
    return (
        f"\nCRITICAL OUTPUT RULE: The final content MUST be written in {language}. "
        f"Translate any structural logic into natural-sounding {language}."
    )


def format_references(pieces: list[ContentPiece], label: str) -> str:
    """Render reference scripts as numbered ``[LABEL #n]`` blocks."""
    return "\n\n".join(
        f"[{label} #{i}]\n"
        f"Title: {sanitize_text(p.title)}\n"
        f"Transcript: {sanitize_text(p.script)}\n"
        f"Feedback: {sanitize_text(p.comments) or 'N/A'}"
        for i, p in enumerate(pieces, start=1)
    )
