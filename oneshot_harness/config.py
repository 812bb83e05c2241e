"""Run configuration assembled by the CLI layer.

The core never reads the environment itself: the trace toggle is resolved
here and handed to the diagnostic dumper as a plain boolean.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Mapping, Optional, Sequence

from .diagnostics import DiagnosticDumper
from .errors import ArgumentError
from .profiling import PhaseProfiler
from .runners._types import BackendCfg
from .runners.backends import BACKENDS, make_backend, resolve_backend_name
from .runners.backends.base import Backend
from .runners.harness import InputHarness, SyntheticHarness, TextHarness
from .runners.inference_runner import DEFAULT_NUM_THREADS, InferenceRunner


TRACE_ENV_VAR = "ONESHOT_HARNESS_TRACE_MODEL"

Variant = Literal["text", "synthetic"]


def trace_enabled_from_env(environ: Optional[Mapping[str, str]] = None) -> bool:
    """True only when the toggle is present and exactly "1"."""

    env = os.environ if environ is None else environ
    return env.get(TRACE_ENV_VAR) == "1"


def parse_dim_overrides(items: Optional[Sequence[str]]) -> dict[str, int]:
    """Parse repeated ``NAME=VALUE`` options into a dim override map."""

    out: dict[str, int] = {}
    for item in items or []:
        name, sep, value = str(item).partition("=")
        name = name.strip()
        if not sep or not name:
            raise ArgumentError(f"Invalid --dim {item!r}, expected NAME=VALUE")
        try:
            size = int(value)
        except ValueError:
            raise ArgumentError(f"Invalid --dim {item!r}, VALUE must be an integer") from None
        if size <= 0:
            raise ArgumentError(f"Invalid --dim {item!r}, VALUE must be positive")
        out[name] = size
    return out


@dataclass
class HarnessConfig:
    model_path: Path
    variant: Variant
    vocab_path: Optional[Path] = None
    text: Optional[str] = None
    text_file: Optional[Path] = None

    backend: str = "auto"
    backend_cfg: BackendCfg = field(default_factory=BackendCfg)
    num_threads: int = DEFAULT_NUM_THREADS

    lowercase: bool = True
    strip_accents: bool = True

    trace_enabled: bool = False
    profile: bool = __debug__
    result_json: Optional[Path] = None
    verbose: bool = False

    @classmethod
    def from_args(cls, args: Any, environ: Optional[Mapping[str, str]] = None) -> "HarnessConfig":
        variant = str(args.variant)

        text = getattr(args, "text", None)
        text_file = getattr(args, "text_file", None)
        if variant == "text" and (text is None) == (text_file is None):
            raise ArgumentError("text requires exactly one of TEXT or --text-file")

        num_threads = int(args.threads)
        if num_threads <= 0:
            raise ArgumentError(f"--threads must be positive, got {num_threads}")

        backend = resolve_backend_name(args.backend, Path(args.model))
        if backend not in BACKENDS:
            raise ArgumentError(f"Unknown backend '{backend}'")

        return cls(
            model_path=Path(args.model),
            variant=variant,  # type: ignore[arg-type]
            vocab_path=Path(args.vocab) if getattr(args, "vocab", None) else None,
            text=text,
            text_file=Path(text_file) if text_file is not None else None,
            backend=backend,
            backend_cfg=BackendCfg(dim_overrides=parse_dim_overrides(args.dim)),
            num_threads=num_threads,
            lowercase=not getattr(args, "no_lowercase", False),
            strip_accents=not getattr(args, "keep_accents", False),
            trace_enabled=bool(args.trace) or trace_enabled_from_env(environ),
            profile=__debug__ and not args.no_profile,
            result_json=Path(args.result_json) if args.result_json else None,
            verbose=bool(args.verbose),
        )

    def make_backend(self) -> Backend:
        return make_backend(self.backend, self.model_path, self.backend_cfg)

    def make_harness(self) -> InputHarness:
        if self.variant == "synthetic":
            return SyntheticHarness()
        if self.vocab_path is None:
            raise ArgumentError("text variant requires a vocabulary path")
        return TextHarness(
            self.vocab_path,
            text=self.text,
            text_file=self.text_file,
            lowercase=self.lowercase,
            strip_accents=self.strip_accents,
        )

    def make_runner(self) -> InferenceRunner:
        return InferenceRunner(
            self.make_backend(),
            self.make_harness(),
            num_threads=self.num_threads,
            profiler=PhaseProfiler(enabled=self.profile),
            dumper=DiagnosticDumper(trace_enabled=self.trace_enabled),
        )
