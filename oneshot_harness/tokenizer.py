"""Tokenizer capability used by the text harness.

The harness only needs two operations: ``init`` with a vocabulary and
normalization flags, and ``process`` which writes a token sequence triple of
exactly ``sequence_length`` values into caller-provided buffers. Padding and
truncation policy belongs to the tokenizer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Union

import numpy as np
from tokenizers import BertWordPieceTokenizer

from .errors import TokenizerInitError, TokenizerProcessError

log = logging.getLogger(__name__)

TextLike = Union[str, bytes]


@dataclass
class TokenSequenceTriple:
    """Token ids, segment ids and attention mask of identical length."""

    token_ids: np.ndarray
    segment_ids: np.ndarray
    attention_mask: np.ndarray

    def __len__(self) -> int:
        return int(self.token_ids.shape[0])


class Tokenizer(Protocol):
    def init(self, vocab_path: Path, lowercase: bool, strip_accents: bool) -> None:
        ...

    def process(
        self,
        text: TextLike,
        out_token_ids: np.ndarray,
        out_segment_ids: np.ndarray,
        out_attention_mask: np.ndarray,
        sequence_length: int,
    ) -> None:
        ...


class WordPieceTokenizer:
    """BERT WordPiece tokenizer backed by the HuggingFace ``tokenizers`` library.

    A single sentence is framed as ``[CLS] tokens [SEP]``, truncated to the
    sequence length and right-padded with ``[PAD]``. Segment ids are all 0;
    the attention mask is 1 for real and special tokens and 0 for padding.
    """

    pad_token = "[PAD]"

    def __init__(self) -> None:
        self._tok: Optional[BertWordPieceTokenizer] = None
        self._pad_id: int = 0

    @property
    def initialized(self) -> bool:
        return self._tok is not None

    def init(self, vocab_path: Path, lowercase: bool = True, strip_accents: bool = True) -> None:
        path = Path(vocab_path)
        if not path.is_file():
            raise TokenizerInitError(f"Vocabulary file does not exist: {path}")

        try:
            tok = BertWordPieceTokenizer.from_file(str(path), lowercase=lowercase, strip_accents=strip_accents)
        except Exception as e:
            raise TokenizerInitError(f"Can't load vocabulary {path}: {type(e).__name__}: {e}") from e

        pad_id = tok.token_to_id(self.pad_token)
        if pad_id is None:
            raise TokenizerInitError(f"Vocabulary {path} has no {self.pad_token} token")

        self._tok = tok
        self._pad_id = int(pad_id)
        log.debug("Loaded vocabulary %s (%d entries)", path, tok.get_vocab_size())

    def encode(self, text: TextLike, sequence_length: int) -> TokenSequenceTriple:
        """Tokenize into freshly allocated int64 arrays."""

        triple = TokenSequenceTriple(
            token_ids=np.zeros(sequence_length, dtype=np.int64),
            segment_ids=np.zeros(sequence_length, dtype=np.int64),
            attention_mask=np.zeros(sequence_length, dtype=np.int64),
        )
        self.process(text, triple.token_ids, triple.segment_ids, triple.attention_mask, sequence_length)
        return triple

    def process(
        self,
        text: TextLike,
        out_token_ids: np.ndarray,
        out_segment_ids: np.ndarray,
        out_attention_mask: np.ndarray,
        sequence_length: int,
    ) -> None:
        if self._tok is None:
            raise TokenizerProcessError("Tokenizer is not initialized")

        seq_len = int(sequence_length)
        if seq_len < 2:
            raise TokenizerProcessError(f"Sequence length {seq_len} cannot hold [CLS] and [SEP]")
        for label, out in (
            ("token ids", out_token_ids),
            ("segment ids", out_segment_ids),
            ("attention mask", out_attention_mask),
        ):
            if out.ndim != 1 or out.shape[0] != seq_len:
                raise TokenizerProcessError(f"Output buffer for {label} has shape {out.shape}, expected ({seq_len},)")

        encoding = self._encode(_as_text(text), seq_len)

        # Assemble first so a malformed encoding never leaves partial writes behind.
        ids = np.asarray(encoding.ids, dtype=np.int64)
        type_ids = np.asarray(encoding.type_ids, dtype=np.int64)
        mask = np.asarray(encoding.attention_mask, dtype=np.int64)
        if not (ids.shape[0] == type_ids.shape[0] == mask.shape[0] == seq_len):
            raise TokenizerProcessError(
                f"Tokenizer produced {ids.shape[0]}/{type_ids.shape[0]}/{mask.shape[0]} values, expected {seq_len}"
            )

        out_token_ids[:] = ids
        out_segment_ids[:] = type_ids
        out_attention_mask[:] = mask

    def _encode(self, text: str, seq_len: int):
        tok = self._tok
        tok.enable_truncation(max_length=seq_len)
        tok.enable_padding(length=seq_len, pad_id=self._pad_id, pad_token=self.pad_token)
        try:
            return tok.encode(text)
        except Exception as e:
            raise TokenizerProcessError(f"Tokenization failed: {type(e).__name__}: {e}") from e


def _as_text(text: TextLike) -> str:
    if isinstance(text, bytes):
        try:
            return text.decode("utf-8")
        except UnicodeDecodeError as e:
            raise TokenizerProcessError(f"Input text is not valid UTF-8: {e}") from e
    if not isinstance(text, str):
        raise TokenizerProcessError(f"Input text must be str or bytes, got {type(text).__name__}")
    return text
