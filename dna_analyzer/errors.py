"""Error taxonomy for AI-response ingestion.

Transport failures (``httpx.HTTPError``) are not wrapped; they reach the
caller unchanged.  Everything here means the model answered but the answer
was unusable, or the call never produced an answer.
"""

from __future__ import annotations


class DNAAnalyzerError(Exception):
    """Base class for failures raised by the analyzer core."""


class ConfigurationError(DNAAnalyzerError):
    """A credential or model id needed for the call is missing."""


class ResponseParseError(DNAAnalyzerError):
    """The response was not JSON, even after repair.

    ``raw_text`` holds the offending output for logging; it is kept out of
    the message so it never reaches end users by accident.
    """

    def __init__(self, message: str, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text


class ResponseStructureError(DNAAnalyzerError):
    """The response parsed but lacks a field the caller cannot default."""

    def __init__(self, message: str, payload: object = None) -> None:
        super().__init__(message)
        self.payload = payload


class GenerationError(DNAAnalyzerError):
    """The generation call returned no usable content."""


class GenerationTimeout(GenerationError):
    """A generation call exceeded the configured per-call timeout."""
