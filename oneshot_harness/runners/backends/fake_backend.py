"""In-process backend driven by a JSON graph description.

The fake engine exists so the contract validator and the input harnesses can
be exercised without a native runtime or a real model file. A model file is a
JSON document::

    {
      "inputs":  [{"name": "input_ids", "type": "INT64", "shape": [1, 8]}, ...],
      "outputs": [{"name": "logits", "type": "FLOAT32", "shape": [1, 2]}],
      "tensors": [{"name": "dense/q", "type": "INT8", "shape": [8, 2],
                   "scale": 0.05, "zero_point": -3}],
      "ops": ["Embedding", "ReduceSum"]
    }

Executing fills every output with the sum of all input elements, so callers
can check that the forward pass read what was written.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

import numpy as np

from ...errors import ExecutionError, GraphBuildError, ModelLoadError
from .._types import BackendCaps, BackendCfg, QuantParams, TensorSlot, TensorType, numpy_dtype
from .base import GraphInstance, Model, SlotTableBackend

log = logging.getLogger(__name__)

# Operators the fake engine can resolve. "Fail" resolves but fails at execution.
BUILTIN_OPS = frozenset({"Identity", "Embedding", "MatMul", "ReduceSum", "Softmax", "Fail"})


@dataclass
class FakeTensorSpec:
    name: str
    type: str
    shape: list[int]
    scale: float = 0.0
    zero_point: int = 0


@dataclass
class FakeGraphSpec:
    inputs: list[FakeTensorSpec]
    outputs: list[FakeTensorSpec] = field(default_factory=list)
    tensors: list[FakeTensorSpec] = field(default_factory=list)
    ops: list[str] = field(default_factory=lambda: ["Identity"])

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2)

    def write(self, path: Path) -> Path:
        path = Path(path)
        path.write_text(self.to_json(), encoding="utf-8")
        return path

    @classmethod
    def from_dict(cls, data: Any) -> "FakeGraphSpec":
        """Build a spec from decoded JSON; raises ValueError on a malformed document."""

        if not isinstance(data, dict):
            raise ValueError(f"top level must be an object, got {type(data).__name__}")

        def _specs(key: str) -> list[FakeTensorSpec]:
            items = data.get(key, [])
            if not isinstance(items, list):
                raise ValueError(f"'{key}' must be a list")
            return [_tensor_spec(key, t) for t in items]

        ops = data.get("ops", ["Identity"])
        if not isinstance(ops, list) or not all(isinstance(op, str) for op in ops):
            raise ValueError("'ops' must be a list of strings")

        return cls(
            inputs=_specs("inputs"),
            outputs=_specs("outputs"),
            tensors=_specs("tensors"),
            ops=list(ops),
        )


def _tensor_spec(key: str, t: Any) -> FakeTensorSpec:
    if not isinstance(t, dict):
        raise ValueError(f"'{key}' entries must be objects, got {type(t).__name__}")
    name, ttype, shape = t.get("name"), t.get("type"), t.get("shape")
    if not isinstance(name, str):
        raise ValueError(f"'{key}' entry has no string 'name'")
    if not isinstance(ttype, str):
        raise ValueError(f"tensor {name!r}: 'type' must be a string")
    if not isinstance(shape, list) or not all(isinstance(d, int) and not isinstance(d, bool) for d in shape):
        raise ValueError(f"tensor {name!r}: 'shape' must be a list of integers")
    scale, zero_point = t.get("scale", 0.0), t.get("zero_point", 0)
    if not isinstance(scale, (int, float)) or isinstance(scale, bool):
        raise ValueError(f"tensor {name!r}: 'scale' must be a number")
    if not isinstance(zero_point, int) or isinstance(zero_point, bool):
        raise ValueError(f"tensor {name!r}: 'zero_point' must be an integer")
    extra = set(t) - {"name", "type", "shape", "scale", "zero_point"}
    if extra:
        raise ValueError(f"tensor {name!r}: unknown keys {sorted(extra)}")
    return FakeTensorSpec(name=name, type=ttype, shape=list(shape), scale=float(scale), zero_point=zero_point)


class FakeBackend(SlotTableBackend):
    """Backend that executes a declared graph in plain numpy."""

    def __init__(self, cfg: Optional[BackendCfg] = None, name: str = "fake") -> None:
        self.name = name
        self.cfg = cfg or BackendCfg()
        self.capabilities = BackendCaps(native_quantization=True)
        # Names of the capability calls made, in order (useful for tests).
        self.calls: list[str] = []

    def load(self, path: Path) -> Model:
        self.calls.append("load")
        path = Path(path)
        if not path.is_file():
            raise ModelLoadError(f"Model file does not exist: {path}")
        try:
            spec = FakeGraphSpec.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError) as e:
            raise ModelLoadError(f"Can't load model {path}: {type(e).__name__}: {e}") from e
        return Model(path=path, backend_name=self.name, payload=spec)

    def build(self, model: Model, num_threads: Optional[int] = None) -> GraphInstance:
        self.calls.append("build")
        spec: FakeGraphSpec = model.payload

        unknown = [op for op in spec.ops if op not in BUILTIN_OPS]
        if unknown:
            raise GraphBuildError(f"Failed to construct interpreter: unresolved operators {unknown}")

        graph = GraphInstance(model=model, handle=spec, num_threads=num_threads)
        for group, target in ((spec.inputs, graph.input_indices), (spec.tensors, None), (spec.outputs, graph.output_indices)):
            for t in group:
                idx = len(graph.slots)
                try:
                    ttype = TensorType[t.type.upper()]
                except KeyError:
                    raise GraphBuildError(f"Tensor {t.name!r} has unknown element type {t.type!r}") from None
                slot = TensorSlot(
                    index=idx,
                    name=t.name,
                    type=ttype,
                    shape=tuple(t.shape),
                    quantization=QuantParams(scale=t.scale, zero_point=t.zero_point),
                )
                dtype = numpy_dtype(ttype)
                if dtype is not None and slot.numel >= 0:
                    slot.nbytes = slot.numel * dtype.itemsize
                graph.slots[idx] = slot
                if target is not None:
                    target.append(idx)
        return graph

    def set_parallelism(self, graph: GraphInstance, num_threads: int) -> None:
        self.calls.append("set_parallelism")
        graph.num_threads = int(num_threads)

    def allocate(self, graph: GraphInstance) -> None:
        self.calls.append("allocate")
        if graph.allocated:
            return
        for idx in graph.input_indices:
            slot = graph.slots[idx]
            dtype = numpy_dtype(slot.type)
            if dtype is None or slot.numel < 0:
                raise GraphBuildError(f"Input {slot.name!r} cannot be allocated ({slot.type.name}, {slot.shape})")
            slot.data = np.zeros(slot.shape, dtype=dtype)
        graph.allocated = True

    def node_count(self, graph: GraphInstance) -> int:
        return len(graph.handle.ops)

    def describe(self, graph: GraphInstance) -> str:
        spec: FakeGraphSpec = graph.handle
        lines = [f"Node {i:4d} Operator {op}" for i, op in enumerate(spec.ops)]
        for idx in self.tensor_indices(graph):
            slot = graph.slots[idx]
            lines.append(f"Tensor {idx:4d} {slot.name} {slot.type.name} {list(slot.shape)}")
        return "\n".join(lines)

    def execute(self, graph: GraphInstance) -> None:
        self.calls.append("execute")
        if not graph.allocated:
            raise ExecutionError("Graph must be allocated before execute")
        if "Fail" in graph.handle.ops:
            raise ExecutionError("Operator Fail returned an error")

        total = sum(float(np.sum(graph.slots[i].data, dtype=np.float64)) for i in graph.input_indices)
        for idx in graph.output_indices:
            slot = graph.slots[idx]
            dtype = numpy_dtype(slot.type)
            if dtype is None or slot.numel < 0:
                raise ExecutionError(f"Output {slot.name!r} cannot be materialized")
            slot.data = np.full(slot.shape, total, dtype=dtype)
            slot.nbytes = int(slot.data.nbytes)
        log.debug("Fake graph executed, input sum=%s", total)

    def release(self, graph: GraphInstance) -> None:
        self.calls.append("release")
        super().release(graph)
