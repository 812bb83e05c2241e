from __future__ import annotations

import enum
import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Literal, Optional

import numpy as np

from ..profiling import PhaseTiming


Status = Literal["ok", "failed"]


class TensorType(enum.IntEnum):
    """Element type codes of a tensor slot.

    The numeric values follow the TensorFlow Lite ``TfLiteType`` enumeration so
    diagnostic dumps are comparable across engines.
    """

    NOTYPE = 0
    FLOAT32 = 1
    INT32 = 2
    UINT8 = 3
    INT64 = 4
    STRING = 5
    BOOL = 6
    INT16 = 7
    COMPLEX64 = 8
    INT8 = 9
    FLOAT16 = 10
    FLOAT64 = 11
    COMPLEX128 = 12
    UINT64 = 13
    RESOURCE = 14
    VARIANT = 15
    UINT32 = 16
    UINT16 = 17
    INT4 = 18


_NUMPY_DTYPES: dict[TensorType, Any] = {
    TensorType.FLOAT32: np.float32,
    TensorType.INT32: np.int32,
    TensorType.UINT8: np.uint8,
    TensorType.INT64: np.int64,
    TensorType.STRING: np.object_,
    TensorType.BOOL: np.bool_,
    TensorType.INT16: np.int16,
    TensorType.COMPLEX64: np.complex64,
    TensorType.INT8: np.int8,
    TensorType.FLOAT16: np.float16,
    TensorType.FLOAT64: np.float64,
    TensorType.COMPLEX128: np.complex128,
    TensorType.UINT64: np.uint64,
    TensorType.UINT32: np.uint32,
    TensorType.UINT16: np.uint16,
}

INTEGER_TYPES = frozenset(
    {
        TensorType.INT8,
        TensorType.INT16,
        TensorType.INT32,
        TensorType.INT64,
        TensorType.UINT8,
        TensorType.UINT16,
        TensorType.UINT32,
        TensorType.UINT64,
    }
)


def numpy_dtype(ttype: TensorType) -> Optional[np.dtype]:
    """Return the numpy dtype backing ``ttype`` (None for opaque types)."""

    dt = _NUMPY_DTYPES.get(TensorType(ttype))
    return None if dt is None else np.dtype(dt)


def tensor_type_from_numpy(dtype: Any) -> TensorType:
    dt = np.dtype(dtype)
    for ttype, np_dt in _NUMPY_DTYPES.items():
        if np.dtype(np_dt) == dt:
            return ttype
    return TensorType.NOTYPE


@dataclass(frozen=True)
class QuantParams:
    """Per-tensor affine quantization parameters (zeros when not quantized)."""

    scale: float = 0.0
    zero_point: int = 0


@dataclass(frozen=True)
class BackendCaps:
    """Capability flags for a backend.

    Keep this minimal and additive only.
    """

    # Quantization params come from the engine rather than graph heuristics.
    native_quantization: bool = False


@dataclass
class BackendCfg:
    """Backend-specific configuration.

    Backends interpret the fields they understand and ignore the rest.
    """

    # onnxruntime execution providers, in priority order.
    providers: list[str] = field(default_factory=lambda: ["CPUExecutionProvider"])
    # Attributes applied to ``onnxruntime.SessionOptions`` when present.
    sess_options: dict[str, Any] = field(default_factory=dict)
    # Symbolic dimension name -> concrete size, applied at allocation.
    dim_overrides: dict[str, int] = field(default_factory=dict)
    batch_size: int = 1


@dataclass
class TensorSlot:
    """A typed, shaped buffer of a graph instance, addressed by index.

    ``shape`` uses -1 for dimensions that are not known before allocation.
    ``data`` is a typed view onto the backing buffer: writable for input
    slots once the graph is allocated, filled for output slots after
    execution, otherwise None.
    """

    index: int
    name: str
    type: TensorType
    shape: tuple[int, ...]
    nbytes: int = 0
    quantization: QuantParams = field(default_factory=QuantParams)
    data: Optional[np.ndarray] = None

    @property
    def numel(self) -> int:
        n = 1
        for d in self.shape:
            if d < 0:
                return -1
            n *= int(d)
        return n

    @property
    def seq_len(self) -> Optional[int]:
        """Second dimension (the first being the batch dimension), if any."""

        return int(self.shape[1]) if len(self.shape) > 1 else None

    def flat(self) -> np.ndarray:
        """Return a flat view onto the slot buffer (never a copy)."""

        if self.data is None:
            raise ValueError(f"Tensor slot {self.index} ({self.name!r}) has no backing buffer")
        flat = self.data.reshape(-1)
        if flat.size and not np.shares_memory(flat, self.data):
            raise ValueError(f"Tensor slot {self.index} ({self.name!r}) buffer is not contiguous")
        return flat

    def summary(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "name": self.name,
            "type": self.type.name,
            "shape": list(self.shape),
            "nbytes": self.nbytes,
            "scale": self.quantization.scale,
            "zero_point": self.quantization.zero_point,
        }


@dataclass
class RunResult:
    """Structured output of one harness run."""

    schema_version: int = 1
    status: Status = "failed"
    exit_code: int = 0

    backend: str = ""
    variant: str = ""
    model_path: str = ""

    phases: list[PhaseTiming] = field(default_factory=list)
    inputs: list[dict[str, Any]] = field(default_factory=list)
    outputs: list[dict[str, Any]] = field(default_factory=list)

    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    # Output tensors by slot name; not serialized.
    output_arrays: dict[str, np.ndarray] = field(default_factory=dict, repr=False)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d.pop("output_arrays", None)
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, sort_keys=False, default=_json_default)


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, np.generic):
        return obj.item()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")
