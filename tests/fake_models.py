"""Fake-backend graph specs shared by the tests."""

from __future__ import annotations

from typing import Optional, Sequence

from oneshot_harness.runners.backends.fake_backend import FakeGraphSpec, FakeTensorSpec


def bert_spec(
    seq_len: int = 8,
    n_inputs: int = 3,
    dtype: str = "INT64",
    lengths: Optional[Sequence[int]] = None,
    ops: Sequence[str] = ("Embedding", "MatMul", "Softmax"),
) -> FakeGraphSpec:
    names = ["input_ids", "token_type_ids", "attention_mask", "extra"]
    lengths = list(lengths) if lengths is not None else [seq_len] * n_inputs
    return FakeGraphSpec(
        inputs=[FakeTensorSpec(name=names[i], type=dtype, shape=[1, lengths[i]]) for i in range(n_inputs)],
        outputs=[FakeTensorSpec(name="logits", type="FLOAT32", shape=[1, 2])],
        tensors=[FakeTensorSpec(name="classifier/weights_q", type="INT8", shape=[16, 2], scale=0.05, zero_point=-3)],
        ops=list(ops),
    )


def counting_spec(n: int = 256, dtype: str = "INT32", ops: Sequence[str] = ("ReduceSum",)) -> FakeGraphSpec:
    return FakeGraphSpec(
        inputs=[FakeTensorSpec(name="x", type=dtype, shape=[1, n])],
        outputs=[FakeTensorSpec(name="y", type="INT64", shape=[1])],
        ops=list(ops),
    )
