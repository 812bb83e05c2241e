from __future__ import annotations

import io
import re

import pytest

from oneshot_harness.profiling import PhaseProfiler

LINE = re.compile(r"^(?P<name>.+): (?P<secs>\d+\.\d{6}) sec$")


def test_phase_prints_name_and_seconds():
    out = io.StringIO()
    prof = PhaseProfiler(enabled=True, stream=out)

    with prof.phase("Load model"):
        pass
    with prof.phase("Inference"):
        pass

    lines = out.getvalue().splitlines()
    assert [LINE.match(line).group("name") for line in lines] == ["Load model", "Inference"]
    assert [t.name for t in prof.timings] == ["Load model", "Inference"]
    assert all(t.seconds >= 0.0 for t in prof.timings)


def test_phase_reports_on_exception():
    out = io.StringIO()
    prof = PhaseProfiler(enabled=True, stream=out)

    with pytest.raises(RuntimeError):
        with prof.phase("Preprocess"):
            raise RuntimeError("boom")

    assert LINE.match(out.getvalue().strip()).group("name") == "Preprocess"
    assert [t.name for t in prof.timings] == ["Preprocess"]


def test_disabled_profiler_is_silent():
    out = io.StringIO()
    prof = PhaseProfiler(enabled=False, stream=out)

    with prof.phase("Inference"):
        value = 42

    assert value == 42
    assert out.getvalue() == ""
    assert prof.timings == []


def test_default_stream_is_stderr(capsys):
    prof = PhaseProfiler(enabled=True)
    with prof.phase("Load model"):
        pass

    captured = capsys.readouterr()
    assert captured.out == ""
    assert LINE.match(captured.err.strip())
