"""Input signature checks run before any tensor write.

A contract inspects the declared input slots of an allocated graph and either
returns the size the harness will write or raises TensorContractViolation.
Contracts never write and never coerce: a slot whose type or shape was not
validated is never written through.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

import numpy as np

from ..errors import TensorContractViolation
from ._types import INTEGER_TYPES, TensorSlot, TensorType, numpy_dtype


class InputContract(Protocol):
    def check(self, slots: Sequence[TensorSlot]) -> int:
        ...


@dataclass(frozen=True)
class TextInputContract:
    """Three INT64 inputs of shape [1, L]: token ids, segment ids, attention mask.

    ``check`` returns the shared sequence length L.
    """

    roles: tuple[str, ...] = ("token ids", "segment ids", "attention mask")

    def check(self, slots: Sequence[TensorSlot]) -> int:
        if len(slots) != len(self.roles):
            raise TensorContractViolation(
                f"Expected {len(self.roles)} input tensors ({', '.join(self.roles)}), got {len(slots)}"
            )

        lengths: list[int] = []
        for role, slot in zip(self.roles, slots):
            if slot.type != TensorType.INT64:
                raise TensorContractViolation(
                    f"Input {slot.index} ({role}, {slot.name!r}) has type {slot.type.name}, expected INT64"
                )
            if len(slot.shape) != 2 or slot.shape[0] != 1:
                raise TensorContractViolation(
                    f"Input {slot.index} ({role}, {slot.name!r}) has shape {list(slot.shape)}, expected [1, L]"
                )
            length = int(slot.shape[1])
            if length <= 0:
                raise TensorContractViolation(
                    f"Input {slot.index} ({role}, {slot.name!r}) has non-positive sequence length {length}"
                )
            if lengths and length != lengths[0]:
                raise TensorContractViolation(
                    f"Input {slot.index} ({role}, {slot.name!r}) has sequence length {length}, "
                    f"expected {lengths[0]} like the token ids"
                )
            lengths.append(length)
        return lengths[0]


@dataclass(frozen=True)
class SyntheticInputContract:
    """At least one input whose first slot is integer typed and can hold 1..N.

    ``check`` returns the element count N of the first input.
    """

    def check(self, slots: Sequence[TensorSlot]) -> int:
        if not slots:
            raise TensorContractViolation("Expected at least one input tensor, got 0")

        slot = slots[0]
        if slot.type not in INTEGER_TYPES:
            raise TensorContractViolation(
                f"Input {slot.index} ({slot.name!r}) has type {slot.type.name}, expected an integer type"
            )
        n = slot.numel
        if n <= 0:
            raise TensorContractViolation(
                f"Input {slot.index} ({slot.name!r}) has no elements to write (shape {list(slot.shape)})"
            )
        dtype = numpy_dtype(slot.type)
        if dtype is None or n > int(np.iinfo(dtype).max):
            raise TensorContractViolation(
                f"Input {slot.index} ({slot.name!r}) of type {slot.type.name} cannot hold the values 1..{n}"
            )
        return n
