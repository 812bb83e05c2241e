from __future__ import annotations

import io
import json

import pytest

from fake_models import bert_spec, counting_spec
from oneshot_harness.diagnostics import DiagnosticDumper
from oneshot_harness.errors import ExecutionError, GraphBuildError, ModelLoadError, TensorContractViolation
from oneshot_harness.profiling import PhaseProfiler
from oneshot_harness.runners import InferenceRunner
from oneshot_harness.runners.artifacts import write_run_result
from oneshot_harness.runners.backends.fake_backend import FakeBackend
from oneshot_harness.runners.harness import SyntheticHarness, TextHarness


def _runner(backend, harness, *, trace: bool = False):
    profiler = PhaseProfiler(enabled=True, stream=io.StringIO())
    dumper = DiagnosticDumper(trace_enabled=trace, stream=io.StringIO())
    return InferenceRunner(backend, harness, num_threads=8, profiler=profiler, dumper=dumper)


def test_synthetic_run_end_to_end(write_fake):
    backend = FakeBackend()
    runner = _runner(backend, SyntheticHarness())

    result = runner.run(write_fake(counting_spec(n=256)))

    assert result.status == "ok"
    assert result.exit_code == 0
    assert result.variant == "synthetic"
    assert [p.name for p in result.phases] == ["Load model", "Preprocess", "Inference"]
    assert result.output_arrays["y"].tolist() == [32896]
    assert result.inputs[0]["name"] == "x"
    assert result.outputs[0]["type"] == "INT64"
    assert backend.calls == ["load", "build", "set_parallelism", "allocate", "execute", "release"]


def test_text_run_end_to_end(write_fake, vocab_file):
    runner = _runner(FakeBackend(), TextHarness(vocab_file, text="hello world"))

    result = runner.run(write_fake(bert_spec(seq_len=8)))

    assert result.status == "ok"
    assert result.output_arrays["logits"].tolist() == [[20.0, 20.0]]


def test_missing_model_stops_after_load(tmp_path):
    backend = FakeBackend()
    runner = _runner(backend, SyntheticHarness())

    with pytest.raises(ModelLoadError):
        runner.run(tmp_path / "absent.json")

    assert backend.calls == ["load"]
    assert [p.name for p in runner.result.phases] == ["Load model"]
    assert runner.result.status == "failed"
    assert runner.result.exit_code == 2
    assert runner.result.errors == [f"Load model failed: Model file does not exist: {tmp_path / 'absent.json'}"]


def test_unresolved_operator_fails_build(write_fake):
    backend = FakeBackend()
    runner = _runner(backend, SyntheticHarness())

    with pytest.raises(GraphBuildError):
        runner.run(write_fake(counting_spec(ops=["NoSuchOp"])))

    assert backend.calls == ["load", "build"]
    assert runner.result.exit_code == 3


def test_contract_violation_skips_inference_and_releases(write_fake, vocab_file):
    backend = FakeBackend()
    runner = _runner(backend, TextHarness(vocab_file, text="hello"))

    with pytest.raises(TensorContractViolation):
        runner.run(write_fake(bert_spec(n_inputs=2)))

    assert "execute" not in backend.calls
    assert backend.calls[-1] == "release"
    assert [p.name for p in runner.result.phases] == ["Load model", "Preprocess"]
    assert runner.result.exit_code == 4


def test_execution_failure(write_fake):
    backend = FakeBackend()
    runner = _runner(backend, SyntheticHarness())

    with pytest.raises(ExecutionError, match="Fail"):
        runner.run(write_fake(counting_spec(ops=["Identity", "Fail"])))

    assert backend.calls[-2:] == ["execute", "release"]
    assert [p.name for p in runner.result.phases] == ["Load model", "Preprocess", "Inference"]
    assert runner.result.exit_code == 7
    assert runner.result.output_arrays == {}


def test_release_failure_becomes_warning(write_fake):
    class _BrokenRelease(FakeBackend):
        def release(self, graph):
            raise RuntimeError("handle already gone")

    runner = _runner(_BrokenRelease(), SyntheticHarness())
    result = runner.run(write_fake(counting_spec(n=4)))

    assert result.status == "ok"
    assert result.warnings == ["Backend.release failed (fake): RuntimeError: handle already gone"]


def test_trace_dump_runs_after_allocation(write_fake):
    dump = io.StringIO()
    runner = InferenceRunner(
        FakeBackend(),
        SyntheticHarness(),
        profiler=PhaseProfiler(enabled=False),
        dumper=DiagnosticDumper(trace_enabled=True, stream=dump),
    )

    result = runner.run(write_fake(counting_spec(n=4)))

    assert result.phases == []
    assert "tensors size: 2" in dump.getvalue()


def test_result_json_round_trip(write_fake, tmp_path):
    runner = _runner(FakeBackend(), SyntheticHarness())
    result = runner.run(write_fake(counting_spec(n=4)))

    path = tmp_path / "out" / "result.json"
    write_run_result(path, result)

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["status"] == "ok"
    assert data["backend"] == "fake"
    assert [p["name"] for p in data["phases"]] == ["Load model", "Preprocess", "Inference"]
    assert "output_arrays" not in data


def test_thread_hint_reaches_build(write_fake):
    class _RecordingBackend(FakeBackend):
        def build(self, model, num_threads=None):
            graph = super().build(model, num_threads=num_threads)
            self.built_with = num_threads
            return graph

    backend = _RecordingBackend()
    runner = InferenceRunner(backend, SyntheticHarness(), num_threads=3, profiler=PhaseProfiler(enabled=False))
    runner.run(write_fake(counting_spec(n=4)))

    assert backend.built_with == 3
