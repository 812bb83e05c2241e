"""Opt-in introspection dump of a graph instance.

The dump only reads slot descriptors; it never writes through a view.
"""

from __future__ import annotations

import sys
from typing import IO, TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .runners._types import TensorSlot
    from .runners.backends.base import Backend, GraphInstance


class DiagnosticDumper:
    def __init__(self, trace_enabled: bool = False, stream: Optional[IO[str]] = None) -> None:
        self.trace_enabled = bool(trace_enabled)
        self._stream = stream

    @property
    def stream(self) -> IO[str]:
        return self._stream if self._stream is not None else sys.stderr

    def dump(self, backend: Backend, graph: GraphInstance) -> bool:
        """Write the dump if tracing is enabled. Returns whether anything was written."""

        if not self.trace_enabled:
            return False

        out = self.stream
        indices = backend.tensor_indices(graph)
        inputs = backend.inputs(graph)
        outputs = backend.outputs(graph)

        print(f"tensors size: {len(indices)}", file=out)
        print(f"nodes size: {backend.node_count(graph)}", file=out)
        print(f"inputs: {len(inputs)}", file=out)
        if inputs:
            print(f"input(0) name: {backend.tensor(graph, inputs[0]).name}", file=out)

        for idx in indices:
            slot = backend.tensor(graph, idx)
            if not slot.name:
                continue
            q = slot.quantization
            print(f"{idx}: {slot.name}, {slot.nbytes}, {int(slot.type)}, {q.scale}, {q.zero_point}", file=out)

        if not backend.capabilities.native_quantization:
            print("(quantization params derived from graph Quantize/Dequantize nodes)", file=out)

        self._dump_io(out, "input", "Input", [backend.tensor(graph, i) for i in inputs])
        self._dump_io(out, "output", "Output", [backend.tensor(graph, i) for i in outputs])

        print(backend.describe(graph), file=out, flush=True)
        return True

    @staticmethod
    def _dump_io(out: IO[str], key: str, label: str, slots: list[TensorSlot]) -> None:
        print(f"number of {key}s: {len(slots)}", file=out)
        for i, slot in enumerate(slots):
            print(f"{key}[{i}]: {slot.index}", file=out)
            dims = slot.seq_len if slot.seq_len is not None else "-"
            print(f"{label} dims: {dims}", file=out)
            print(f"{label} type: {int(slot.type)}", file=out)
