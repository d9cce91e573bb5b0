"""Batch orchestrator for DNA extraction.

Reference sets larger than ``BATCH_SIZE`` are split into ordered groups.
All groups are scheduled at once, but every group after the first sleeps a
random 2-3 s before sending its request, so the provider never sees a
burst of simultaneous calls while latency still overlaps across groups.

All-or-nothing: one failed group fails the whole run and cancels the rest.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from ..models import ContentPiece, GenerationContext, ScriptDNA
from .dna_batch import extract_single_batch
from .openrouter_client import with_timeout

log = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

# Two scripts per prompt keeps each extraction detailed.
BATCH_SIZE = 2
STAGGER_DELAY_S = (2.0, 3.0)

ProgressCallback = Callable[[int, int], None]


def partition(items: Sequence[T], size: int = BATCH_SIZE) -> list[list[T]]:
    """Split *items* into ``ceil(len/size)`` ordered groups of at most *size*."""
    if size < 1:
        raise ValueError("batch size must be >= 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


async def run_staggered(
    batches: list[T],
    worker: Callable[[int, T], Awaitable[R]],
    on_progress: Optional[ProgressCallback] = None,
    delay_range: tuple[float, float] = STAGGER_DELAY_S,
    call_timeout: float | None = None,
) -> list[R]:
    """Run ``worker(i, batch)`` for every batch with staggered starts.

    Results come back in input order; completion order is not assumed.
    """
    total = len(batches)
    if on_progress:
        on_progress(0, total)

    async def run_one(i: int, batch: T) -> R:
        if i > 0:
            delay = random.uniform(*delay_range)
            log.info("Waiting %.2fs before batch %d/%d", delay, i + 1, total)
            await asyncio.sleep(delay)

        log.info("Starting batch %d/%d", i + 1, total)
        if on_progress:
            on_progress(i + 1, total)

        return await with_timeout(worker(i, batch), call_timeout, f"Batch {i + 1}/{total}")

    tasks = [asyncio.create_task(run_one(i, b)) for i, b in enumerate(batches)]
    try:
        results = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        # collect sibling failures so none is left unretrieved
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    if on_progress:
        on_progress(total, total)
    log.info("All %d batches completed", total)
    return list(results)


async def extract_in_batches(
    virals: list[ContentPiece],
    flops: list[ContentPiece],
    ctx: GenerationContext,
    custom_prompt: str | None = None,
    on_progress: Optional[ProgressCallback] = None,
    delay_range: tuple[float, float] = STAGGER_DELAY_S,
) -> list[ScriptDNA]:
    """Extract one partial DNA per group of viral references.

    Flops go to the first group only, so that context is not repeated in
    every prompt.
    """
    batches = partition(virals, BATCH_SIZE)
    log.info("Processing %d batches with staggered delay", len(batches))

    async def worker(i: int, batch: list[ContentPiece]) -> ScriptDNA:
        batch_flops = flops if i == 0 else []
        return await extract_single_batch(batch, batch_flops, ctx, custom_prompt)

    return await run_staggered(
        batches,
        worker,
        on_progress=on_progress,
        delay_range=delay_range,
        call_timeout=ctx.call_timeout,
    )
