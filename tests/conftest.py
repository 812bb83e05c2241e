from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from oneshot_harness.runners.backends.fake_backend import FakeGraphSpec


VOCAB = [
    "[PAD]",
    "[UNK]",
    "[CLS]",
    "[SEP]",
    "[MASK]",
    "hello",
    "world",
    "the",
    "quick",
    "brown",
    "fox",
    "##s",
]


@pytest.fixture
def vocab_file(tmp_path: Path) -> Path:
    path = tmp_path / "vocab.txt"
    path.write_text("\n".join(VOCAB) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def write_fake(tmp_path: Path) -> Callable[..., Path]:
    def _write(spec: FakeGraphSpec, name: str = "model.json") -> Path:
        return spec.write(tmp_path / name)

    return _write
