#!/usr/bin/env python3
"""Convenience entry point.

Equivalent to the ``oneshot-harness`` console script.
"""

from oneshot_harness.cli import main as _main


if __name__ == "__main__":
    raise SystemExit(_main())
