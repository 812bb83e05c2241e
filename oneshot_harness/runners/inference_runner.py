from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import numpy as np

from ..diagnostics import DiagnosticDumper
from ..errors import HarnessError
from ..profiling import PhaseProfiler
from ._types import RunResult
from .backends.base import Backend, GraphInstance
from .harness.base import InputHarness

log = logging.getLogger(__name__)

DEFAULT_NUM_THREADS = 8


class InferenceRunner:
    """Runs exactly one inference.

    InferenceRunner is responsible for:
    - calling Backend load/build/allocate/execute in order
    - invoking the selected input harness (validate + populate)
    - timing the phases and the optional diagnostic dump
    - releasing the graph instance on every exit path

    Failures are not recovered: HarnessError subclasses propagate to the
    caller after being recorded in ``self.result``.
    """

    def __init__(
        self,
        backend: Backend,
        harness: InputHarness,
        *,
        num_threads: int = DEFAULT_NUM_THREADS,
        profiler: Optional[PhaseProfiler] = None,
        dumper: Optional[DiagnosticDumper] = None,
    ) -> None:
        self.backend = backend
        self.harness = harness
        self.num_threads = int(num_threads)
        self.profiler = profiler if profiler is not None else PhaseProfiler()
        self.dumper = dumper if dumper is not None else DiagnosticDumper(trace_enabled=False)
        self.result: Optional[RunResult] = None

    def run(self, model_path: Path) -> RunResult:
        result = RunResult(
            schema_version=1,
            status="failed",
            backend=self.backend.name,
            variant=self.harness.variant,
            model_path=str(model_path),
        )
        self.result = result

        graph: Optional[GraphInstance] = None
        try:
            with self.profiler.phase("Load model"):
                model = self.backend.load(Path(model_path))
                graph = self.backend.build(model, num_threads=self.num_threads)
                self.harness.prepare()
                self.backend.set_parallelism(graph, self.num_threads)
                self.backend.allocate(graph)
                result.inputs = self._summaries(graph, self.backend.inputs(graph))
                self.dumper.dump(self.backend, graph)

            with self.profiler.phase("Preprocess"):
                self.harness.populate(self.backend, graph)

            with self.profiler.phase("Inference"):
                self.backend.execute(graph)

            result.outputs = self._summaries(graph, self.backend.outputs(graph))
            result.output_arrays = self._read_outputs(graph)
            result.status = "ok"
            result.exit_code = 0
            log.info("Done")
            return result

        except HarnessError as e:
            result.status = "failed"
            result.exit_code = e.exit_code
            result.errors.append(f"{e.phase} failed: {e}")
            raise

        finally:
            result.phases = list(self.profiler.timings)
            if graph is not None:
                try:
                    self.backend.release(graph)
                except Exception as e:
                    result.warnings.append(f"Backend.release failed ({self.backend.name}): {type(e).__name__}: {e}")
            try:
                self.harness.close()
            except Exception as e:
                result.warnings.append(f"Harness.close failed: {type(e).__name__}: {e}")

    def _summaries(self, graph: GraphInstance, indices: list[int]) -> list[dict[str, Any]]:
        return [self.backend.tensor(graph, idx).summary() for idx in indices]

    def _read_outputs(self, graph: GraphInstance) -> dict[str, np.ndarray]:
        out: dict[str, np.ndarray] = {}
        for idx in self.backend.outputs(graph):
            slot = self.backend.tensor(graph, idx)
            if slot.data is not None:
                out[slot.name or str(idx)] = np.array(slot.data, copy=True)
        return out
