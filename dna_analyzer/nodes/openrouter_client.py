"""Shared chat-completion HTTP helper for AI-powered pipeline stages.

``ContentGenerator`` is the only seam the pipelines depend on: send a
system + user prompt, get text back.  ``OpenRouterClient`` is the default
implementation against an OpenAI-compatible ``/chat/completions`` API.
Retries are deliberately absent; a failed call propagates to the caller.
``with_timeout`` applies the optional per-call timeout every stage shares.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Protocol, TypeVar

import httpx

from ..errors import ConfigurationError, GenerationError, GenerationTimeout

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"

R = TypeVar("R")


class ContentGenerator(Protocol):
    async def generate(
        self,
        model_id: str,
        system_prompt: str,
        user_prompt: str,
        credential: str,
        json_mode: bool = False,
    ) -> str:
        ...


class OpenRouterClient:
    """Send prompts to ``{base_url}/chat/completions`` and return the text.

    *timeout* is the httpx timeout in seconds (``None`` waits forever, as
    long generations routinely exceed a minute).  *transport* lets tests
    plug in ``httpx.MockTransport``.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def generate(
        self,
        model_id: str,
        system_prompt: str,
        user_prompt: str,
        credential: str,
        json_mode: bool = False,
    ) -> str:
        if not credential:
            raise ConfigurationError("API credential is not configured")
        if not model_id:
            raise ConfigurationError("Model id is not configured")

        payload: dict = {
            "model": model_id,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        log.info("Calling model=%s json_mode=%s prompt_chars=%d",
                 model_id, json_mode, len(system_prompt) + len(user_prompt))

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                resp = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers={"Authorization": f"Bearer {credential}"},
                    json=payload,
                )
            except httpx.TimeoutException as e:
                log.error("Generation request timed out: %s", e)
                raise GenerationTimeout(f"Generation request timed out after {self.timeout}s") from e

            if resp.status_code >= 400:
                log.error("Generation request failed: HTTP %d %s",
                          resp.status_code, resp.text[:500])
            resp.raise_for_status()

        data = resp.json()
        choices = data.get("choices") or []
        content = ""
        if choices and isinstance(choices[0], dict):
            content = (choices[0].get("message") or {}).get("content") or ""

        if not content:
            raise GenerationError("No response content received from the model")

        log.info("Model responded (%d chars)", len(content))
        return content


async def with_timeout(aw: Awaitable[R], timeout: float | None, label: str) -> R:
    """Await *aw*, turning an expired *timeout* into ``GenerationTimeout``.

    ``None`` waits indefinitely.
    """
    if timeout is None:
        return await aw
    try:
        return await asyncio.wait_for(aw, timeout=timeout)
    except asyncio.TimeoutError as e:
        log.error("%s timed out after %ss", label, timeout)
        raise GenerationTimeout(f"{label} timed out after {timeout}s") from e
