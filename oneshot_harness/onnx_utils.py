"""ONNX graph parsing helpers.

Includes:
- dtype/shape helpers
- value_info map extraction
- per-tensor quantization parameter lookup
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

import onnx
from onnx import AttributeProto, TensorProto, helper, numpy_helper, shape_inference

from .runners._types import QuantParams, TensorType

log = logging.getLogger(__name__)


_ONNX_TO_TENSOR_TYPE: Dict[int, TensorType] = {
    TensorProto.FLOAT: TensorType.FLOAT32,
    TensorProto.INT32: TensorType.INT32,
    TensorProto.UINT8: TensorType.UINT8,
    TensorProto.INT64: TensorType.INT64,
    TensorProto.STRING: TensorType.STRING,
    TensorProto.BOOL: TensorType.BOOL,
    TensorProto.INT16: TensorType.INT16,
    TensorProto.COMPLEX64: TensorType.COMPLEX64,
    TensorProto.INT8: TensorType.INT8,
    TensorProto.FLOAT16: TensorType.FLOAT16,
    TensorProto.DOUBLE: TensorType.FLOAT64,
    TensorProto.COMPLEX128: TensorType.COMPLEX128,
    TensorProto.UINT64: TensorType.UINT64,
    TensorProto.UINT32: TensorType.UINT32,
    TensorProto.UINT16: TensorType.UINT16,
    TensorProto.INT4: TensorType.INT4,
}


def tensor_type_from_onnx(elem_type: Optional[int]) -> TensorType:
    """Map an ONNX TensorProto elem_type onto a TensorType (NOTYPE if unknown)."""
    if elem_type is None:
        return TensorType.NOTYPE
    return _ONNX_TO_TENSOR_TYPE.get(int(elem_type), TensorType.NOTYPE)


# ---------------------------- ValueInfo helpers ----------------------------

def shape_from_vi(vi) -> Optional[List[Optional[int]]]:
    if vi is None or not vi.type.HasField("tensor_type"):
        return None
    if not vi.type.tensor_type.HasField("shape"):
        return None
    shp: List[Optional[int]] = []
    for d in vi.type.tensor_type.shape.dim:
        shp.append(int(d.dim_value) if d.HasField("dim_value") else None)
    return shp


def dim_params_from_vi(vi) -> List[str]:
    """Symbolic dimension names, "" where the dimension is static or anonymous."""
    if vi is None or not vi.type.HasField("tensor_type"):
        return []
    return [str(getattr(d, "dim_param", "") or "") for d in vi.type.tensor_type.shape.dim]


def elemtype_from_vi(vi) -> Optional[int]:
    if vi is None or not vi.type.HasField("tensor_type"):
        return None
    return int(vi.type.tensor_type.elem_type)


def infer_shapes(model: onnx.ModelProto) -> onnx.ModelProto:
    """Best-effort shape inference; returns the input model if inference fails."""
    try:
        return shape_inference.infer_shapes(model)
    except Exception as e:
        log.debug("ONNX shape inference failed, continuing without it: %s", e)
        return model


def value_info_map(model: onnx.ModelProto) -> Dict[str, onnx.ValueInfoProto]:
    """Map tensor name -> ValueInfo.

    Notes
    -----
    ONNX models do not always populate `graph.value_info` for every produced tensor.
    Tensor-valued `Constant` outputs are backfilled so they show up with dtype and
    static dims in diagnostic dumps.
    """

    vis = list(model.graph.input) + list(model.graph.value_info) + list(model.graph.output)
    m: Dict[str, onnx.ValueInfoProto] = {vi.name: vi for vi in vis}

    for n in model.graph.node:
        if n.op_type != "Constant" or not n.output:
            continue
        out = n.output[0]
        if out in m:
            continue
        for a in n.attribute:
            if a.name == "value" and a.type == AttributeProto.TENSOR:
                m[out] = helper.make_tensor_value_info(out, a.t.data_type, list(a.t.dims))
                break

    return m


# ---------------------------- Quantization helpers ----------------------------

def _scalar_initializer(inits: Dict[str, TensorProto], name: str) -> Optional[Tuple[float, ...]]:
    t = inits.get(name)
    if t is None:
        return None
    arr = numpy_helper.to_array(t).reshape(-1)
    return tuple(arr.tolist())


def quant_params_map(model: onnx.ModelProto) -> Dict[str, QuantParams]:
    """Per-tensor (scale, zero_point) for quantized tensors.

    A tensor is considered quantized when it is the output of a QuantizeLinear
    node or the data input of a DequantizeLinear node whose scale (and
    optional zero point) are scalar initializers. Per-axis quantization is
    left out; such tensors report zeros like an unquantized tensor.
    """

    inits = {t.name: t for t in model.graph.initializer}
    out: Dict[str, QuantParams] = {}

    for n in model.graph.node:
        if n.op_type == "QuantizeLinear" and n.output:
            target = n.output[0]
        elif n.op_type == "DequantizeLinear" and n.input:
            target = n.input[0]
        else:
            continue
        if len(n.input) < 2:
            continue

        scale = _scalar_initializer(inits, n.input[1])
        if scale is None or len(scale) != 1:
            continue
        zp: Tuple[float, ...] = (0,)
        if len(n.input) > 2 and n.input[2]:
            got = _scalar_initializer(inits, n.input[2])
            if got is None or len(got) != 1:
                continue
            zp = got

        out[target] = QuantParams(scale=float(scale[0]), zero_point=int(zp[0]))

    return out
