from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from ...errors import ArgumentError
from ...tokenizer import TextLike, Tokenizer, WordPieceTokenizer
from ..backends.base import Backend, GraphInstance
from ..contract import TextInputContract
from .base import input_slots

log = logging.getLogger(__name__)


class TextHarness:
    """Tokenize one text and write token ids, segment ids and attention mask.

    The text comes either from ``text`` or from ``text_file`` (read as raw
    bytes so undecodable files surface as tokenizer preprocessing errors).
    """

    variant = "text"

    def __init__(
        self,
        vocab_path: Path,
        text: Optional[str] = None,
        text_file: Optional[Path] = None,
        *,
        lowercase: bool = True,
        strip_accents: bool = True,
        tokenizer: Optional[Tokenizer] = None,
    ) -> None:
        if (text is None) == (text_file is None):
            raise ArgumentError("Exactly one of text or text_file must be given")

        self.vocab_path = Path(vocab_path)
        self.text_file = Path(text_file) if text_file is not None else None
        self.lowercase = lowercase
        self.strip_accents = strip_accents
        self.tokenizer: Tokenizer = tokenizer if tokenizer is not None else WordPieceTokenizer()
        self.contract = TextInputContract()

        self._text: Optional[TextLike] = text

    def prepare(self) -> None:
        self.tokenizer.init(self.vocab_path, self.lowercase, self.strip_accents)

        if self.text_file is not None:
            try:
                self._text = self.text_file.read_bytes()
            except OSError as e:
                raise ArgumentError(f"Can't read text file {self.text_file}: {e}") from e
            log.info("Read %d bytes of text from %s", len(self._text), self.text_file)

    def populate(self, backend: Backend, graph: GraphInstance) -> int:
        if self._text is None:
            raise ArgumentError("TextHarness.prepare() must run before populate()")

        slots = input_slots(backend, graph)
        seq_len = self.contract.check(slots)

        token_ids, segment_ids, attention_mask = (s.flat() for s in slots)
        self.tokenizer.process(self._text, token_ids, segment_ids, attention_mask, seq_len)

        log.debug(
            "Wrote %d tokens (%d attended) into inputs %s",
            seq_len,
            int(attention_mask.sum()),
            [s.index for s in slots],
        )
        return seq_len

    def close(self) -> None:
        self._text = None
