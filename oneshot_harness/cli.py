"""Command line interface for the single-shot inference harness.

Exit status: 0 on success, 1 for bad arguments, 2 when the model can't be
loaded, 3 when the graph can't be built, 4 on an input signature mismatch,
5/6 for tokenizer init/preprocessing failures and 7 when execution fails.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from . import __version__
from .config import TRACE_ENV_VAR, HarnessConfig
from .errors import EXIT_CODES, ArgumentError, HarnessError
from .log_utils import configure_logging
from .runners.artifacts import write_run_result
from .runners.backends import BACKENDS

log = logging.getLogger(__name__)


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports usage errors as ArgumentError (exit 1)."""

    def error(self, message: str):  # type: ignore[override]
        raise ArgumentError(f"{message}\n{self.format_usage().rstrip()}")


def _exit_status_help() -> str:
    codes = ", ".join(f"{code} {name}" for name, code in sorted(EXIT_CODES.items(), key=lambda kv: kv[1]))
    return f"exit status: 0 success, {codes}"


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--backend",
        type=str,
        default="auto",
        choices=["auto", *sorted(BACKENDS)],
        help="Execution engine; auto picks tflite for .tflite files, fake for .json and ort otherwise.",
    )
    common.add_argument("--threads", type=int, default=8, help="Advisory thread count for the engine")
    common.add_argument(
        "--dim",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Concrete size for a symbolic input dimension (repeatable)",
    )
    common.add_argument("--no-profile", action="store_true", help="Do not report per-phase timings")
    common.add_argument(
        "--trace",
        action="store_true",
        help=f"Dump tensor/graph diagnostics after load (same as {TRACE_ENV_VAR}=1)",
    )
    common.add_argument("--result-json", type=str, default=None, help="Write the run result to this JSON file")
    common.add_argument("-v", "--verbose", action="store_true")

    ap = _ArgumentParser(
        prog="oneshot-harness",
        description="Load a model, populate its inputs and run one inference.",
        epilog=_exit_status_help(),
    )
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = ap.add_subparsers(dest="variant", required=True, metavar="{text,synthetic}")

    text = sub.add_parser(
        "text",
        parents=[common],
        help="Tokenize text into token ids, segment ids and attention mask",
    )
    text.add_argument("model", help="Path to the model file")
    text.add_argument("vocab", help="Path to the WordPiece vocabulary (one token per line)")
    text.add_argument("text", nargs="?", default=None, help="Input text")
    text.add_argument("--text-file", type=str, default=None, help="Read the input text from this file")
    text.add_argument("--no-lowercase", action="store_true", help="Keep the input casing")
    text.add_argument("--keep-accents", action="store_true", help="Do not strip accents")

    synth = sub.add_parser(
        "synthetic",
        parents=[common],
        help="Fill the first input with 1..N (no tokenizer needed)",
    )
    synth.add_argument("model", help="Path to the model file")

    return ap


def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()

    try:
        args = ap.parse_args(argv)
        cfg = HarnessConfig.from_args(args)
        runner = cfg.make_runner()
    except ArgumentError as e:
        print(f"Usage error: {e}", file=sys.stderr)
        return e.exit_code

    configure_logging(cfg.verbose)
    if cfg.variant == "text":
        shown = cfg.text if cfg.text is not None else f"<{cfg.text_file}>"
        log.info("Model path: `%s`, text: `%s`", cfg.model_path, shown)
    else:
        log.info("Model path: `%s`", cfg.model_path)

    exit_code = 0
    try:
        runner.run(cfg.model_path)
    except HarnessError as e:
        print(f"{e.phase} failed: {e}", file=sys.stderr)
        exit_code = e.exit_code
    finally:
        if cfg.result_json is not None and runner.result is not None:
            try:
                write_run_result(cfg.result_json, runner.result)
            except OSError as e:
                log.warning("Could not write %s: %s", cfg.result_json, e)

    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
