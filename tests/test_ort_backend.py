from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

pytest.importorskip("onnxruntime")

from onnx_models import write_bert_like, write_counting, write_quantized, write_unresolvable
from oneshot_harness.errors import ExecutionError, GraphBuildError, ModelLoadError
from oneshot_harness.runners._types import BackendCfg, TensorType
from oneshot_harness.runners.backends.ort_backend import OrtBackend
from oneshot_harness.runners.harness import SyntheticHarness, TextHarness


def _allocated(path: Path, cfg: BackendCfg | None = None):
    backend = OrtBackend(cfg)
    graph = backend.build(backend.load(path))
    backend.allocate(graph)
    return backend, graph


def test_missing_model_file(tmp_path):
    with pytest.raises(ModelLoadError, match="does not exist"):
        OrtBackend().load(tmp_path / "missing.onnx")


def test_corrupt_model_file(tmp_path):
    path = tmp_path / "corrupt.onnx"
    path.write_bytes(b"definitely not an onnx protobuf \xff\xff\xff")
    with pytest.raises(ModelLoadError):
        OrtBackend().load(path)


def test_unresolvable_operator_fails_build(tmp_path):
    backend = OrtBackend()
    model = backend.load(write_unresolvable(tmp_path / "mystery.onnx"))
    with pytest.raises(GraphBuildError, match="Failed to construct interpreter"):
        backend.build(model)


def test_slot_table_describes_inputs_and_outputs(tmp_path):
    backend = OrtBackend()
    graph = backend.build(backend.load(write_bert_like(tmp_path / "bert.onnx")))

    inputs = [backend.tensor(graph, i) for i in backend.inputs(graph)]
    assert [s.name for s in inputs] == ["input_ids", "token_type_ids", "attention_mask"]
    assert all(s.type == TensorType.INT64 for s in inputs)
    assert all(s.shape == (1, 8) and s.nbytes == 64 for s in inputs)
    assert all(s.data is None for s in inputs)

    outputs = [backend.tensor(graph, i) for i in backend.outputs(graph)]
    assert [s.name for s in outputs] == ["sum"]

    # intermediate Add result is listed too
    names = {backend.tensor(graph, i).name for i in backend.tensor_indices(graph)}
    assert "partial_0" in names
    assert backend.node_count(graph) == 2


def test_text_population_and_execute_round_trip(tmp_path, vocab_file):
    backend, graph = _allocated(write_bert_like(tmp_path / "bert.onnx"))

    harness = TextHarness(vocab_file, text="hello world")
    harness.prepare()
    harness.populate(backend, graph)

    ids, seg, mask = (backend.tensor(graph, i).data for i in backend.inputs(graph))
    assert ids[0].tolist() == [2, 5, 6, 3, 0, 0, 0, 0]
    assert seg[0].tolist() == [0] * 8
    assert mask[0].tolist() == [1, 1, 1, 1, 0, 0, 0, 0]

    backend.execute(graph)
    out = backend.tensor(graph, backend.outputs(graph)[0]).data
    assert out.tolist() == [[3, 6, 7, 4, 0, 0, 0, 0]]


def test_synthetic_population_and_execute(tmp_path):
    backend, graph = _allocated(write_counting(tmp_path / "count.onnx", n=256))

    SyntheticHarness().populate(backend, graph)
    backend.execute(graph)

    out = backend.tensor(graph, backend.outputs(graph)[0]).data
    assert out.dtype == np.int32
    assert out.reshape(-1).tolist() == list(range(1, 257))


def test_symbolic_dims_need_overrides(tmp_path):
    path = write_bert_like(tmp_path / "dyn.onnx", seq="sequence_length", batch="batch_size")

    backend = OrtBackend()
    graph = backend.build(backend.load(path))
    assert backend.tensor(graph, 0).shape == (-1, -1)
    with pytest.raises(GraphBuildError, match="--dim sequence_length=VALUE"):
        backend.allocate(graph)

    backend, graph = _allocated(path, BackendCfg(dim_overrides={"sequence_length": 16}))
    assert backend.tensor(graph, 0).shape == (1, 16)
    assert backend.tensor(graph, 0).nbytes == 16 * 8


def test_execute_requires_allocation(tmp_path):
    backend = OrtBackend()
    graph = backend.build(backend.load(write_counting(tmp_path / "count.onnx", n=4)))
    with pytest.raises(ExecutionError, match="allocated"):
        backend.execute(graph)


def test_parallelism_hint_before_and_after_allocation(tmp_path, caplog):
    backend = OrtBackend()
    graph = backend.build(backend.load(write_counting(tmp_path / "count.onnx", n=4)))

    backend.set_parallelism(graph, 2)
    assert graph.num_threads == 2

    backend.allocate(graph)
    backend.set_parallelism(graph, 4)
    assert graph.num_threads == 2
    assert "ignored" in caplog.text


def test_quantization_params_from_quantize_nodes(tmp_path):
    backend = OrtBackend()
    graph = backend.build(backend.load(write_quantized(tmp_path / "q.onnx")))

    by_name = {backend.tensor(graph, i).name: backend.tensor(graph, i) for i in backend.tensor_indices(graph)}
    q = by_name["x_q"]
    assert q.type == TensorType.UINT8
    assert q.quantization.scale == pytest.approx(0.5)
    assert q.quantization.zero_point == 3
    assert by_name["x"].quantization.scale == 0.0

    text = backend.describe(graph)
    assert "QuantizeLinear" in text
    assert "CPUExecutionProvider" in text


def test_release_drops_session_and_buffers(tmp_path):
    backend, graph = _allocated(write_counting(tmp_path / "count.onnx", n=4))
    backend.release(graph)
    assert graph.handle is None
    assert not graph.allocated
    assert backend.tensor(graph, 0).data is None


def test_run_creates_one_session_with_thread_hint(tmp_path, monkeypatch):
    import onnxruntime as ort

    from oneshot_harness.cli import main

    real_session = ort.InferenceSession
    threads: list[int] = []

    def _counting_session(*args, **kwargs):
        threads.append(kwargs["sess_options"].intra_op_num_threads)
        return real_session(*args, **kwargs)

    monkeypatch.setattr(ort, "InferenceSession", _counting_session)
    model = write_counting(tmp_path / "count.onnx", n=4)

    assert main(["synthetic", str(model), "--no-profile", "--threads", "3"]) == 0
    assert threads == [3]
