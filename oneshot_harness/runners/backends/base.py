from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Protocol

from .._types import BackendCaps, TensorSlot


@dataclass(frozen=True)
class Model:
    """A model read fully into memory.

    ``payload`` is engine specific (parsed protobuf, flatbuffer bytes, ...)
    and is never mutated after load.
    """

    path: Path
    backend_name: str
    payload: Any


@dataclass
class GraphInstance:
    """Opaque executable graph returned by Backend.build().

    Backends may subclass/extend.
    """

    model: Model
    handle: Any
    input_indices: list[int] = field(default_factory=list)
    output_indices: list[int] = field(default_factory=list)
    slots: dict[int, TensorSlot] = field(default_factory=dict)
    allocated: bool = False
    num_threads: int | None = None


class Backend(Protocol):
    """Runtime capability consumed by the harness.

    Backends encapsulate engine-specific work:
    - loading a model file and building one executable graph from it
    - describing and exposing the graph's tensor slots
    - executing a single forward pass
    - releasing native resources
    """

    name: str
    capabilities: BackendCaps

    def load(self, path: Path) -> Model: ...

    # num_threads is applied when the engine handle is created.
    def build(self, model: Model, num_threads: Optional[int] = None) -> GraphInstance: ...

    def set_parallelism(self, graph: GraphInstance, num_threads: int) -> None: ...

    def allocate(self, graph: GraphInstance) -> None: ...

    def inputs(self, graph: GraphInstance) -> list[int]: ...

    def outputs(self, graph: GraphInstance) -> list[int]: ...

    def tensor(self, graph: GraphInstance, index: int) -> TensorSlot: ...

    def tensor_indices(self, graph: GraphInstance) -> list[int]: ...

    def node_count(self, graph: GraphInstance) -> int: ...

    def describe(self, graph: GraphInstance) -> str: ...

    def execute(self, graph: GraphInstance) -> None: ...

    def release(self, graph: GraphInstance) -> None: ...


class SlotTableBackend:
    """Shared slot bookkeeping for backends that keep ``graph.slots`` in Python."""

    def inputs(self, graph: GraphInstance) -> list[int]:
        return list(graph.input_indices)

    def outputs(self, graph: GraphInstance) -> list[int]:
        return list(graph.output_indices)

    def tensor(self, graph: GraphInstance, index: int) -> TensorSlot:
        try:
            return graph.slots[int(index)]
        except KeyError:
            raise IndexError(f"No tensor slot with index {index}") from None

    def tensor_indices(self, graph: GraphInstance) -> list[int]:
        return sorted(graph.slots)

    def release(self, graph: GraphInstance) -> None:
        graph.handle = None
        for slot in graph.slots.values():
            slot.data = None
        graph.allocated = False
