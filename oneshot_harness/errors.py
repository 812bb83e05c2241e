"""Fatal error kinds raised by the harness.

Every error is terminal for the run. The CLI maps each class to a distinct
process exit status and reports the phase that failed.
"""

from __future__ import annotations


class HarnessError(Exception):
    """Base class for all harness failures."""

    exit_code: int = 1
    phase: str = "Harness"


class ArgumentError(HarnessError):
    exit_code = 1
    phase = "Arguments"


class ModelLoadError(HarnessError):
    exit_code = 2
    phase = "Load model"


class GraphBuildError(HarnessError):
    exit_code = 3
    phase = "Build graph"


class TensorContractViolation(HarnessError):
    """Declared input slots do not match what the input harness writes."""

    exit_code = 4
    phase = "Preprocess"


class TokenizerInitError(HarnessError):
    exit_code = 5
    phase = "Tokenizer init"


class TokenizerProcessError(HarnessError):
    exit_code = 6
    phase = "Preprocess"


class ExecutionError(HarnessError):
    exit_code = 7
    phase = "Inference"


EXIT_CODES = {
    cls.__name__: cls.exit_code
    for cls in (
        ArgumentError,
        ModelLoadError,
        GraphBuildError,
        TensorContractViolation,
        TokenizerInitError,
        TokenizerProcessError,
        ExecutionError,
    )
}
