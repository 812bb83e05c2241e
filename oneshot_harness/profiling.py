"""Scoped wall-clock timing of harness phases.

``with profiler.phase("Inference"): ...`` writes ``Inference: 0.001234 sec``
to the diagnostic stream when the block exits, including when it exits with
an exception. A disabled profiler hands out a no-op context, so call sites
stay the same in uninstrumented runs (the default under ``python -O``).
"""

from __future__ import annotations

import contextlib
import sys
import time
from dataclasses import dataclass
from typing import IO, Iterator, Optional


@dataclass(frozen=True)
class PhaseTiming:
    name: str
    seconds: float


class PhaseProfiler:
    def __init__(self, enabled: bool = __debug__, stream: Optional[IO[str]] = None) -> None:
        self.enabled = bool(enabled)
        self._stream = stream
        self.timings: list[PhaseTiming] = []

    @property
    def stream(self) -> IO[str]:
        # Resolve lazily so redirected/captured stderr is honoured.
        return self._stream if self._stream is not None else sys.stderr

    def phase(self, name: str) -> contextlib.AbstractContextManager:
        if not self.enabled:
            return contextlib.nullcontext()
        return self._timed(name)

    @contextlib.contextmanager
    def _timed(self, name: str) -> Iterator[None]:
        t0 = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - t0
            self.timings.append(PhaseTiming(name=name, seconds=elapsed))
            print(f"{name}: {elapsed:.6f} sec", file=self.stream, flush=True)
