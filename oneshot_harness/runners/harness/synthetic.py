from __future__ import annotations

import logging

import numpy as np

from ..backends.base import Backend, GraphInstance
from ..contract import SyntheticInputContract
from .base import input_slots

log = logging.getLogger(__name__)


class SyntheticHarness:
    """Fill the first input with 1, 2, ..., N.

    Exercises loading and execution without a tokenizer. The values depend
    only on the slot's element count, so every run writes the same data.
    """

    variant = "synthetic"

    def __init__(self) -> None:
        self.contract = SyntheticInputContract()

    def prepare(self) -> None:
        return None

    def populate(self, backend: Backend, graph: GraphInstance) -> int:
        slots = input_slots(backend, graph)
        n = self.contract.check(slots)

        target = slots[0].flat()
        target[:] = np.arange(1, n + 1, dtype=target.dtype)

        log.debug("Wrote 1..%d into input %d (%s)", n, slots[0].index, slots[0].name)
        return n

    def close(self) -> None:
        return None
