from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import numpy as np

from ...errors import ExecutionError, GraphBuildError, ModelLoadError
from .._types import BackendCaps, BackendCfg, QuantParams, TensorSlot, tensor_type_from_numpy
from .base import GraphInstance, Model

log = logging.getLogger(__name__)

# FlatBuffer file identifier of TFLite models (bytes 4..8).
_TFLITE_FILE_ID = b"TFL3"

# Interpreter construction runs the flatbuffer verifier before op resolution.
_INVALID_FLATBUFFER = "not a valid flatbuffer"


def _interpreter_class() -> Any:
    try:
        import tflite_runtime.interpreter as tflite  # type: ignore
    except ImportError as e:
        raise GraphBuildError("tflite-runtime is not installed (pip install oneshot-harness[tflite])") from e
    return tflite.Interpreter


@dataclass
class _TFLitePrepared:
    interpreter: Any
    executed: bool = False
    # index -> tensor details, cached until the interpreter is rebuilt
    details: Optional[dict[int, dict[str, Any]]] = None


class TFLiteBackend:
    """TensorFlow Lite backend.

    The interpreter owns every tensor buffer. Input views handed out by
    ``tensor()`` alias interpreter memory, so callers must drop them before
    ``execute()`` (the interpreter refuses to invoke while numpy views to its
    internal buffers are alive).
    """

    def __init__(self, cfg: Optional[BackendCfg] = None, name: str = "tflite") -> None:
        self.name = name
        self.cfg = cfg or BackendCfg()
        self.capabilities = BackendCaps(native_quantization=True)

    def load(self, path: Path) -> Model:
        path = Path(path)
        if not path.is_file():
            raise ModelLoadError(f"Model file does not exist: {path}")
        try:
            raw = path.read_bytes()
        except OSError as e:
            raise ModelLoadError(f"Can't read model {path}: {e}") from e

        if len(raw) < 8 or raw[4:8] != _TFLITE_FILE_ID:
            raise ModelLoadError(f"Can't load model {path}: missing TFLite file identifier")

        return Model(path=path, backend_name=self.name, payload=raw)

    def build(self, model: Model, num_threads: Optional[int] = None) -> GraphInstance:
        interp = self._make_interpreter(model, num_threads=num_threads)
        return GraphInstance(
            model=model,
            num_threads=num_threads,
            handle=_TFLitePrepared(interpreter=interp),
            input_indices=[int(d["index"]) for d in interp.get_input_details()],
            output_indices=[int(d["index"]) for d in interp.get_output_details()],
        )

    def _make_interpreter(self, model: Model, num_threads: Optional[int]) -> Any:
        interpreter_cls = _interpreter_class()
        try:
            return interpreter_cls(model_content=model.payload, num_threads=num_threads)
        except (ValueError, RuntimeError) as e:
            if _INVALID_FLATBUFFER in str(e).lower():
                raise ModelLoadError(f"Can't load model {model.path}: {e}") from e
            raise GraphBuildError(f"Failed to construct interpreter: {e}") from e

    def set_parallelism(self, graph: GraphInstance, num_threads: int) -> None:
        if graph.num_threads == num_threads:
            return
        if graph.allocated:
            log.warning("Thread hint %d ignored: graph is already allocated", num_threads)
            return
        graph.handle.interpreter = self._make_interpreter(graph.model, num_threads=num_threads)
        graph.handle.details = None
        graph.num_threads = int(num_threads)

    def allocate(self, graph: GraphInstance) -> None:
        if graph.allocated:
            return
        try:
            graph.handle.interpreter.allocate_tensors()
        except (ValueError, RuntimeError) as e:
            raise GraphBuildError(f"Failed to allocate tensors: {e}") from e
        graph.handle.details = None
        graph.allocated = True

    def inputs(self, graph: GraphInstance) -> list[int]:
        return list(graph.input_indices)

    def outputs(self, graph: GraphInstance) -> list[int]:
        return list(graph.output_indices)

    def _details(self, graph: GraphInstance) -> dict[int, dict[str, Any]]:
        prep: _TFLitePrepared = graph.handle
        if prep.details is None:
            prep.details = {int(d["index"]): d for d in prep.interpreter.get_tensor_details()}
        return prep.details

    def tensor_indices(self, graph: GraphInstance) -> list[int]:
        return sorted(self._details(graph))

    def tensor(self, graph: GraphInstance, index: int) -> TensorSlot:
        prep: _TFLitePrepared = graph.handle
        details = self._details(graph)
        if int(index) not in details:
            raise IndexError(f"No tensor slot with index {index}")
        d = details[int(index)]

        dtype = np.dtype(d["dtype"])
        shape = tuple(int(x) for x in d["shape"])
        scale, zero_point = d.get("quantization", (0.0, 0))

        slot = TensorSlot(
            index=int(index),
            name=str(d.get("name", "")),
            type=tensor_type_from_numpy(dtype),
            shape=shape,
            nbytes=int(np.prod(shape, dtype=np.int64)) * dtype.itemsize,
            quantization=QuantParams(scale=float(scale), zero_point=int(zero_point)),
        )

        if graph.allocated and int(index) in graph.input_indices:
            slot.data = prep.interpreter.tensor(int(index))()
        elif prep.executed and int(index) in graph.output_indices:
            slot.data = prep.interpreter.get_tensor(int(index))
        return slot

    def node_count(self, graph: GraphInstance) -> int:
        ops = getattr(graph.handle.interpreter, "_get_ops_details", None)
        return len(ops()) if ops is not None else 0

    def describe(self, graph: GraphInstance) -> str:
        interp = graph.handle.interpreter
        lines: list[str] = []
        for _, d in sorted(self._details(graph).items()):
            lines.append(
                f"Tensor {int(d['index']):4d} {d.get('name', '')} {np.dtype(d['dtype']).name} "
                f"{list(int(x) for x in d['shape'])}"
            )
        ops = getattr(interp, "_get_ops_details", None)
        if ops is not None:
            for op in ops():
                lines.append(
                    f"Node {int(op['index']):4d} Operator {op['op_name']} "
                    f"inputs={list(op['inputs'])} outputs={list(op['outputs'])}"
                )
        return "\n".join(lines)

    def execute(self, graph: GraphInstance) -> None:
        if not graph.allocated:
            raise ExecutionError("Graph must be allocated before execute")
        try:
            graph.handle.interpreter.invoke()
        except (ValueError, RuntimeError) as e:
            raise ExecutionError(f"TFLite invoke failed: {e}") from e
        graph.handle.executed = True

    def release(self, graph: GraphInstance) -> None:
        if graph.handle is not None:
            graph.handle.interpreter = None
        graph.handle = None
        graph.allocated = False
