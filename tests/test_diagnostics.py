from __future__ import annotations

import io

from fake_models import bert_spec, counting_spec
from oneshot_harness.diagnostics import DiagnosticDumper
from oneshot_harness.runners.backends.fake_backend import FakeBackend


def _allocated(write_fake, spec):
    backend = FakeBackend()
    graph = backend.build(backend.load(write_fake(spec)))
    backend.allocate(graph)
    return backend, graph


def test_dump_lists_tensors_and_io(write_fake):
    backend, graph = _allocated(write_fake, bert_spec(seq_len=8))
    out = io.StringIO()

    assert DiagnosticDumper(trace_enabled=True, stream=out).dump(backend, graph)

    lines = out.getvalue().splitlines()
    assert lines[:4] == [
        "tensors size: 5",
        "nodes size: 3",
        "inputs: 3",
        "input(0) name: input_ids",
    ]
    # index: name, bytes, type code, scale, zero point
    assert "0: input_ids, 64, 4, 0.0, 0" in lines
    assert "3: classifier/weights_q, 32, 9, 0.05, -3" in lines
    assert "number of inputs: 3" in lines
    assert "input[2]: 2" in lines
    assert "Input dims: 8" in lines
    assert "Input type: 4" in lines
    assert "number of outputs: 1" in lines
    assert "output[0]: 4" in lines
    assert "Output type: 1" in lines
    assert "Node    0 Operator Embedding" in lines


def test_disabled_dump_writes_nothing(write_fake):
    backend, graph = _allocated(write_fake, counting_spec())
    out = io.StringIO()

    assert not DiagnosticDumper(trace_enabled=False, stream=out).dump(backend, graph)
    assert out.getvalue() == ""


def test_dump_does_not_touch_buffers(write_fake):
    backend, graph = _allocated(write_fake, bert_spec(seq_len=4))
    for i in backend.inputs(graph):
        backend.tensor(graph, i).data[...] = i + 1
    before = [(backend.tensor(graph, i).shape, backend.tensor(graph, i).data.tobytes()) for i in backend.inputs(graph)]

    DiagnosticDumper(trace_enabled=True, stream=io.StringIO()).dump(backend, graph)

    after = [(backend.tensor(graph, i).shape, backend.tensor(graph, i).data.tobytes()) for i in backend.inputs(graph)]
    assert after == before
