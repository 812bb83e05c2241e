"""Logging-related utilities.

All harness output (logs, phase timings, diagnostic dumps) goes to stderr.
"""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def configure_logging(verbose: bool = False) -> None:
    """Send log records to stderr.

    Don't clobber an existing logging configuration (e.g. when embedded or
    under a test runner); only adjust the level in that case.
    """

    level = logging.DEBUG if verbose else logging.INFO
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=level,
            format=LOG_FORMAT,
            handlers=[logging.StreamHandler(sys.stderr)],
        )
    logging.getLogger("oneshot_harness").setLevel(level)
