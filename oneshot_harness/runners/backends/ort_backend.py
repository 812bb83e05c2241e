from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import numpy as np
import onnx

from ... import onnx_utils
from ...errors import ExecutionError, GraphBuildError, ModelLoadError
from .._types import BackendCaps, BackendCfg, TensorSlot, numpy_dtype
from .base import GraphInstance, Model, SlotTableBackend

log = logging.getLogger(__name__)


@dataclass
class _OrtPrepared:
    session: Any
    proto: onnx.ModelProto
    output_names: list[str]
    # slot index -> symbolic dim names ("" for static dims)
    dim_params: dict[int, list[str]] = field(default_factory=dict)


class OrtBackend(SlotTableBackend):
    """ONNXRuntime backend.

    This backend is configured by provider list + optional session options.

    Notes:
    - We import onnxruntime lazily so the module can be imported even in
      environments without ORT (tests may skip).
    - ORT only exposes graph inputs/outputs; the remaining slots (initializers,
      intermediate values) are described from the ONNX graph itself and carry
      no buffer.
    """

    def __init__(self, cfg: Optional[BackendCfg] = None, name: str = "ort") -> None:
        self.name = name
        self.cfg = cfg or BackendCfg()
        self.capabilities = BackendCaps(native_quantization=False)

    # ------------------------------------------------------------------ load
    def load(self, path: Path) -> Model:
        path = Path(path)
        if not path.is_file():
            raise ModelLoadError(f"Model file does not exist: {path}")

        try:
            proto = onnx.load(str(path))
        except Exception as e:
            raise ModelLoadError(f"Can't load model {path}: {type(e).__name__}: {e}") from e

        if proto.ir_version <= 0 or not proto.HasField("graph"):
            raise ModelLoadError(f"Can't load model {path}: not an ONNX model")

        log.debug("Loaded ONNX model %s (ir_version=%d, %d nodes)", path, proto.ir_version, len(proto.graph.node))
        return Model(path=path, backend_name=self.name, payload=proto)

    # ----------------------------------------------------------------- build
    def build(self, model: Model, num_threads: Optional[int] = None) -> GraphInstance:
        session = self._make_session(model, num_threads=num_threads)
        proto: onnx.ModelProto = model.payload

        graph = GraphInstance(model=model, handle=None, num_threads=num_threads)
        dim_params = self._build_slot_table(graph, onnx_utils.infer_shapes(proto))

        graph.handle = _OrtPrepared(
            session=session,
            proto=proto,
            output_names=[o.name for o in session.get_outputs()],
            dim_params=dim_params,
        )
        return graph

    def _make_session(self, model: Model, num_threads: Optional[int]) -> Any:
        try:
            import onnxruntime as ort  # type: ignore
        except ImportError as e:
            raise GraphBuildError("onnxruntime is not installed") from e

        so = ort.SessionOptions()

        # Apply a small subset of options via attrs if present.
        for k, v in self.cfg.sess_options.items():
            if hasattr(so, k):
                setattr(so, k, v)
            else:
                log.warning("Ignoring unknown SessionOptions attribute %r", k)

        if num_threads is not None:
            so.intra_op_num_threads = int(num_threads)

        try:
            return ort.InferenceSession(str(model.path), sess_options=so, providers=list(self.cfg.providers))
        except Exception as e:
            raise GraphBuildError(f"Failed to construct interpreter: {type(e).__name__}: {e}") from e

    def _build_slot_table(self, graph: GraphInstance, proto: onnx.ModelProto) -> dict[int, list[str]]:
        vimap = onnx_utils.value_info_map(proto)
        quant = onnx_utils.quant_params_map(proto)
        inits = {t.name: t for t in proto.graph.initializer}
        dim_params: dict[int, list[str]] = {}

        def _add(name: str, vi: Any) -> int:
            idx = len(graph.slots)
            shape = onnx_utils.shape_from_vi(vi) or []
            ttype = onnx_utils.tensor_type_from_onnx(onnx_utils.elemtype_from_vi(vi))
            slot = TensorSlot(
                index=idx,
                name=name,
                type=ttype,
                shape=tuple(-1 if d is None else int(d) for d in shape),
            )
            slot.nbytes = _static_nbytes(slot)
            if name in quant:
                slot.quantization = quant[name]
            graph.slots[idx] = slot
            dim_params[idx] = onnx_utils.dim_params_from_vi(vi)
            return idx

        seen: set[str] = set()

        # Older exporters list initializers as graph inputs too; those are not feeds.
        for vi in proto.graph.input:
            if vi.name in inits:
                continue
            graph.input_indices.append(_add(vi.name, vi))
            seen.add(vi.name)

        for name, t in inits.items():
            if name in seen:
                continue
            _add(name, onnx.helper.make_tensor_value_info(name, t.data_type, list(t.dims)))
            seen.add(name)

        output_names = {vi.name for vi in proto.graph.output}
        for name, vi in vimap.items():
            if name in seen or name in output_names:
                continue
            _add(name, vi)
            seen.add(name)

        for vi in proto.graph.output:
            graph.output_indices.append(_add(vi.name, vi))

        return dim_params

    # ------------------------------------------------------------- configure
    def set_parallelism(self, graph: GraphInstance, num_threads: int) -> None:
        if graph.num_threads == num_threads:
            return
        if graph.allocated:
            log.warning("Thread hint %d ignored: graph is already allocated", num_threads)
            return

        prep: _OrtPrepared = graph.handle
        # intra_op_num_threads is a session option; recreate the session to apply it.
        prep.session = self._make_session(graph.model, num_threads=num_threads)
        graph.num_threads = int(num_threads)

    def allocate(self, graph: GraphInstance) -> None:
        if graph.allocated:
            return

        prep: _OrtPrepared = graph.handle
        for idx in graph.input_indices:
            slot = graph.slots[idx]
            dims = self._resolve_dims(slot, prep.dim_params.get(idx, []))
            dtype = numpy_dtype(slot.type)
            if dtype is None:
                raise GraphBuildError(f"Input {slot.name!r} has unsupported element type {slot.type.name}")
            slot.shape = tuple(dims)
            slot.data = np.zeros(dims, dtype=dtype)
            slot.nbytes = int(slot.data.nbytes)

        graph.allocated = True

    def _resolve_dims(self, slot: TensorSlot, params: list[str]) -> list[int]:
        dims: list[int] = []
        for pos, d in enumerate(slot.shape):
            if d >= 0:
                dims.append(int(d))
                continue
            param = params[pos] if pos < len(params) else ""
            if param and param in self.cfg.dim_overrides:
                dims.append(int(self.cfg.dim_overrides[param]))
            elif pos == 0:
                dims.append(int(self.cfg.batch_size))
            else:
                raise GraphBuildError(
                    f"Input {slot.name!r} dimension {pos} ({param or 'unnamed'}) is symbolic; "
                    f"pass --dim {param or 'NAME'}=VALUE"
                )
        return dims

    # --------------------------------------------------------------- inspect
    def node_count(self, graph: GraphInstance) -> int:
        return len(graph.handle.proto.graph.node)

    def describe(self, graph: GraphInstance) -> str:
        prep: _OrtPrepared = graph.handle
        lines = [
            f"providers: {', '.join(prep.session.get_providers())}",
            onnx.helper.printable_graph(prep.proto.graph),
        ]
        return "\n".join(lines)

    # --------------------------------------------------------------- execute
    def execute(self, graph: GraphInstance) -> None:
        if not graph.allocated:
            raise ExecutionError("Graph must be allocated before execute")

        prep: _OrtPrepared = graph.handle
        feeds = {graph.slots[idx].name: graph.slots[idx].data for idx in graph.input_indices}

        try:
            outs_list = prep.session.run(prep.output_names, feeds)
        except Exception as e:
            raise ExecutionError(f"onnxruntime failed: {type(e).__name__}: {e}") from e

        for idx, arr in zip(graph.output_indices, outs_list):
            slot = graph.slots[idx]
            slot.data = np.asarray(arr)
            slot.shape = tuple(int(d) for d in slot.data.shape)
            slot.nbytes = int(slot.data.nbytes)


def _static_nbytes(slot: TensorSlot) -> int:
    dtype = numpy_dtype(slot.type)
    n = slot.numel
    if dtype is None or n < 0 or dtype == np.object_:
        return 0
    return int(n) * int(dtype.itemsize)
