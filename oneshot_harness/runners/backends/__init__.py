from __future__ import annotations

from pathlib import Path
from typing import Optional

from .._types import BackendCfg
from .base import Backend, GraphInstance, Model
from .fake_backend import FakeBackend
from .ort_backend import OrtBackend
from .tflite_backend import TFLiteBackend

BACKENDS = {
    "ort": OrtBackend,
    "tflite": TFLiteBackend,
    "fake": FakeBackend,
}


def resolve_backend_name(name: str, model_path: Path) -> str:
    """Resolve "auto" from the model file suffix."""

    key = (name or "auto").strip().lower()
    if key != "auto":
        return key
    suffix = Path(model_path).suffix.lower()
    if suffix == ".tflite":
        return "tflite"
    if suffix == ".json":
        return "fake"
    return "ort"


def make_backend(name: str, model_path: Path, cfg: Optional[BackendCfg] = None) -> Backend:
    key = resolve_backend_name(name, model_path)
    if key not in BACKENDS:
        raise KeyError(f"Unknown backend '{key}' (choose from {', '.join(sorted(BACKENDS))})")
    return BACKENDS[key](cfg)


__all__ = [
    "BACKENDS",
    "Backend",
    "FakeBackend",
    "GraphInstance",
    "Model",
    "OrtBackend",
    "TFLiteBackend",
    "make_backend",
    "resolve_backend_name",
]
