"""Single-shot runner architecture.

This package defines:
- Backend interface (load/build/allocate/execute + slot introspection)
- Input contracts (fail-fast checks of the declared input signature)
- Harness interface (prepare/populate/close)
- InferenceRunner orchestrator (one inference per run)

The goal is to keep engine-specific logic inside backends, input-specific
logic inside harnesses, and sequencing/timing/cleanup inside InferenceRunner.
"""

from ._types import (
    BackendCaps,
    BackendCfg,
    PhaseTiming,
    QuantParams,
    RunResult,
    TensorSlot,
    TensorType,
)
from .contract import SyntheticInputContract, TextInputContract
from .inference_runner import InferenceRunner

__all__ = [
    "BackendCaps",
    "BackendCfg",
    "PhaseTiming",
    "QuantParams",
    "RunResult",
    "TensorSlot",
    "TensorType",
    "SyntheticInputContract",
    "TextInputContract",
    "InferenceRunner",
]
