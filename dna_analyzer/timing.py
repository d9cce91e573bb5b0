"""Transparent timing for pipeline stages.

Provides a ``@timed_node`` decorator and a ``collect_metrics()`` context
manager.  Stage modules stay pure business logic while every decorated
function records its duration into whichever collection is active.

Usage in a stage module::

    from ..timing import timed_node

    @timed_node("dna_synthesis", "ai")
    async def synthesize_dnas(...):
        ...

Usage in the pipeline::

    with collect_metrics() as metrics:
        dna = await dna_extraction.extract_script_dna(...)
    report = build_report(metrics)

Tasks spawned with ``asyncio.create_task`` inherit the active collection,
so concurrently running batch calls all land in the same list.
"""

from __future__ import annotations

import asyncio
import contextvars
import functools
import logging
import time

from .models import StageMetrics

log = logging.getLogger(__name__)

_current_metrics: contextvars.ContextVar[list[StageMetrics] | None] = (
    contextvars.ContextVar("_current_metrics", default=None)
)


class collect_metrics:
    """Context manager that activates metric collection for ``@timed_node``.

    Yields a ``list[StageMetrics]`` that decorated functions append to.
    """

    def __enter__(self) -> list[StageMetrics]:
        self._metrics: list[StageMetrics] = []
        self._token = _current_metrics.set(self._metrics)
        return self._metrics

    def __exit__(self, *exc) -> None:
        _current_metrics.reset(self._token)


def timed_node(name: str, stage_type: str, count_arg: int | None = None):
    """Decorator that records the duration of a pipeline stage.

    Works with both sync and async functions.  *count_arg* is the index of a
    positional argument whose ``len()`` is reported as ``items_processed``.
    Failed calls are not recorded.
    """

    def decorator(fn):
        if asyncio.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def wrapper(*args, **kwargs):
                metrics = _current_metrics.get(None)
                t0 = time.monotonic_ns()
                result = await fn(*args, **kwargs)
                _record(metrics, name, stage_type, t0, _count(args, count_arg))
                return result

        else:

            @functools.wraps(fn)
            def wrapper(*args, **kwargs):
                metrics = _current_metrics.get(None)
                t0 = time.monotonic_ns()
                result = fn(*args, **kwargs)
                _record(metrics, name, stage_type, t0, _count(args, count_arg))
                return result

        return wrapper

    return decorator


def build_report(metrics: list[StageMetrics]) -> dict:
    """Build the structured report dict from stage metrics."""
    total_ms = sum(m.duration_ms for m in metrics)
    prog_ms = sum(m.duration_ms for m in metrics if m.stage_type == "programmatic")
    ai_ms = sum(m.duration_ms for m in metrics if m.stage_type == "ai")

    return {
        "total_duration_ms": total_ms,
        "programmatic_duration_ms": prog_ms,
        "ai_duration_ms": ai_ms,
        "stages": [
            {
                "stage": m.stage_name,
                "type": m.stage_type,
                "duration_ms": m.duration_ms,
                "items_processed": m.items_processed,
            }
            for m in metrics
        ],
    }


def _count(args: tuple, index: int | None) -> int:
    if index is None or index >= len(args):
        return 0
    try:
        return len(args[index])
    except TypeError:
        return 0


def _record(
    metrics: list[StageMetrics] | None,
    name: str,
    stage_type: str,
    t0: int,
    items: int,
) -> None:
    """Compute duration and append to the metrics list (if active)."""
    duration_ms = (time.monotonic_ns() - t0) // 1_000_000
    log.info("%s: %d ms", name, duration_ms)
    if metrics is not None:
        metrics.append(StageMetrics(name, stage_type, duration_ms, items))
