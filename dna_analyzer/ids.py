"""Synthetic ids for DNA profiles and blueprint sections.

Stamps are milliseconds since the epoch, forced to be strictly increasing
within the process so two calls in the same millisecond (or after a clock
step backwards) never share a stamp.
"""

from __future__ import annotations

import threading
import time

_lock = threading.Lock()
_last_stamp = 0


def next_stamp() -> int:
    global _last_stamp
    with _lock:
        now = time.time_ns() // 1_000_000
        _last_stamp = max(now, _last_stamp + 1)
        return _last_stamp


def dna_id(kind: str = "") -> str:
    """``dna-<stamp>``, or ``dna-<kind>-<stamp>`` (e.g. ``synthesized``)."""
    prefix = f"dna-{kind}" if kind else "dna"
    return f"{prefix}-{next_stamp()}"


def section_ids(count: int) -> list[str]:
    """``bp-<stamp>-<index>`` for each section; one stamp per blueprint."""
    stamp = next_stamp()
    return [f"bp-{stamp}-{i}" for i in range(count)]
