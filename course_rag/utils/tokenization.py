"""Token counting for chunk sizing.

Chunk size limits are expressed in tokens, and the chunker needs more than a
count: the ``fixed`` strategy slices the source text at exact token
boundaries, so every counter also reports character ``spans``.

Two implementations ship:

* :class:`WordTokenCounter` -- deterministic whitespace-delimited tokens.
  The default; chunk sizes are then reproducible regardless of which
  embedding model sits downstream.
* :class:`TiktokenTokenCounter` -- BPE tokens from ``tiktoken`` for
  deployments that want chunk budgets to match an OpenAI tokenizer exactly.

Select one with :func:`build_token_counter` (``"word"`` or
``"tiktoken:<encoding>"``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Protocol

from course_rag.utils.errors import ConfigurationError

_WORD_SPAN_RE = re.compile(r"\S+")


class TokenCounter(Protocol):
    """Minimal token-sizing interface shared by the chunker and assessor."""

    def count(self, text: str) -> int:
        """Return the number of tokens in ``text``."""

    def spans(self, text: str) -> list[tuple[int, int]]:
        """Return ``(start, end)`` character offsets of every token in ``text``."""


@dataclass(frozen=True)
class WordTokenCounter:
    """Counts runs of non-whitespace characters as tokens."""

    def count(self, text: str) -> int:
        if not text:
            return 0
        return sum(1 for _ in _WORD_SPAN_RE.finditer(text))

    def spans(self, text: str) -> list[tuple[int, int]]:
        return [m.span() for m in _WORD_SPAN_RE.finditer(text or "")]


@dataclass(frozen=True)
class TiktokenTokenCounter:
    """Exact BPE token counter backed by ``tiktoken``."""

    encoding_name: str
    _enc: Any

    @classmethod
    def from_encoding_name(cls, encoding_name: str) -> "TiktokenTokenCounter":
        import tiktoken

        return cls(encoding_name=encoding_name, _enc=tiktoken.get_encoding(encoding_name))

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self._enc.encode(text))

    def spans(self, text: str) -> list[tuple[int, int]]:
        if not text:
            return []
        tokens = self._enc.encode(text)
        decoded, offsets = self._enc.decode_with_offsets(tokens)
        # Byte-level BPE may split a multi-byte character; offsets repeat then.
        spans: list[tuple[int, int]] = []
        for i, start in enumerate(offsets):
            end = offsets[i + 1] if i + 1 < len(offsets) else len(decoded)
            if end > start:
                spans.append((start, end))
        return spans


def build_token_counter(name: str = "word") -> TokenCounter:
    """Return the token counter selected by configuration string *name*."""
    if name in ("", "word"):
        return WordTokenCounter()
    if name.startswith("tiktoken"):
        _, _, encoding = name.partition(":")
        return TiktokenTokenCounter.from_encoding_name(encoding or "cl100k_base")
    raise ConfigurationError(message=f"Unknown token counter: {name!r}")
