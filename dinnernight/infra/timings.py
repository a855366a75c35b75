# dinnernight/infra/timings.py
"""Step durations of the payment path, served at /api/admin/timings.

Aggregates are kept as running sums (Welford), so a long-running server
does not grow a list per request.
"""
from __future__ import annotations
import math
import time
from dataclasses import dataclass
from typing import Dict, List


@dataclass
class _Stat:
    n: int = 0
    mean: float = 0.0
    m2: float = 0.0
    max: float = 0.0
    errors: int = 0

    def add(self, value: float, failed: bool) -> None:
        self.n += 1
        delta = value - self.mean
        self.mean += delta / self.n
        self.m2 += delta * (value - self.mean)
        self.max = max(self.max, value)
        if failed:
            self.errors += 1

    @property
    def std(self) -> float:
        # sample standard deviation
        return math.sqrt(self.m2 / (self.n - 1)) if self.n > 1 else 0.0


# single event loop: no locks
_STATS: Dict[str, _Stat] = {}


def record_timing(kind: str, seconds: float, failed: bool = False) -> None:
    stat = _STATS.get(kind)
    if stat is None:
        stat = _STATS[kind] = _Stat()
    stat.add(float(seconds), failed)


class timeit:
    """async usage:
        async with timeit("gateway.verify"):
            await fn()

    A block that raises is still timed and counted under ``errors``.
    """
    __slots__ = ("_kind", "_t0")

    def __init__(self, kind: str):
        self._kind = kind
        self._t0 = 0.0

    async def __aenter__(self):
        self._t0 = time.perf_counter()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        record_timing(self._kind, time.perf_counter() - self._t0,
                      failed=exc_type is not None)


def snapshot() -> List[Dict[str, float]]:
    """One aggregate per kind, durations in seconds."""
    return [
        {"kind": kind, "n": s.n, "mean": s.mean, "std": s.std,
         "max": s.max, "errors": s.errors}
        for kind, s in sorted(_STATS.items())
    ]


def reset() -> None:
    _STATS.clear()
