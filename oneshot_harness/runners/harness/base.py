"""Harness protocol.

Harnesses encapsulate *all* input-specific behavior:

- Loading their own collaborators (prepare), e.g. a tokenizer vocabulary
- Validating the graph's declared inputs against their contract
- Writing input data into the validated slots (populate)

The runner treats harnesses as interchangeable; exactly one is selected per run.
"""

from __future__ import annotations

from typing import Protocol

from .._types import TensorSlot
from ..backends.base import Backend, GraphInstance
from ..contract import InputContract


class InputHarness(Protocol):
    variant: str
    contract: InputContract

    def prepare(self) -> None:
        ...

    def populate(self, backend: Backend, graph: GraphInstance) -> int:
        """Validate the declared inputs, then write them.

        Returns the number of elements written per populated slot.
        """

        ...

    def close(self) -> None:
        ...


def input_slots(backend: Backend, graph: GraphInstance) -> list[TensorSlot]:
    """Descriptors (with writable views) of the graph's inputs, in declared order."""

    return [backend.tensor(graph, idx) for idx in backend.inputs(graph)]
