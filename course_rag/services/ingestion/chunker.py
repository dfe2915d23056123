"""Multi-strategy text chunking.

Splits a sanitized :class:`~course_rag.models.document.Document` into
:class:`~course_rag.models.rag.Chunk` objects sized in tokens for the
embedding model.  Four strategies are available:

* **semantic** (default) -- grows a sentence buffer and cuts at natural
  boundaries (paragraph breaks, discourse markers such as "However", a
  sentence ending in ``:``, numbered items, ALL-CAPS headings) once the
  buffer reaches ``min_chunk_size``.  When the next sentence would push the
  buffer past ``max_chunk_size`` the chunk is flushed and the next one
  starts with tail sentences of the previous chunk (up to
  ``overlap_size`` tokens) so concepts that straddle a cut stay retrievable.
  A buffer still under ``min_chunk_size`` at that point is instead filled
  to the max with the head of the next sentence.
* **fixed** -- exact windows of ``max_chunk_size`` tokens with no overlap;
  the chunk text is the exact source slice covered by those tokens.
* **sentence** -- whole sentences packed up to ``max_chunk_size``.  Every
  chunk ends on a sentence, so this strategy alone may emit a chunk under
  ``min_chunk_size`` before a long sentence.
* **paragraph** -- one chunk per paragraph after merging small paragraphs
  forward; oversized paragraphs are packed sentence by sentence like the
  semantic strategy (without boundaries or overlap), and a short remainder
  carries into the next paragraph.

A single sentence longer than ``max_chunk_size`` is always hard-split on
token boundaries.  Apart from the sentence strategy, every chunk except
the last holds between ``min_chunk_size`` and ``max_chunk_size`` tokens.
Every chunk records its ``(start, end)`` span in the sanitized text.
"""

from __future__ import annotations

import hashlib
import re
import uuid
from dataclasses import dataclass

import structlog

from course_rag.models.document import Document
from course_rag.models.rag import Chunk, ChunkStrategy
from course_rag.utils.errors import ConfigurationError, InvalidContentError
from course_rag.utils.text_analysis import split_sentences, words
from course_rag.utils.tokenization import TokenCounter, WordTokenCounter

logger = structlog.get_logger(logger_name=__name__)

_PARAGRAPH_BREAK_RE = re.compile(r"\n[ \t]*\n\s*")
_BLOCK_START_RE = re.compile(r"^(?:#{1,6}\s|[-*•]\s|\d+[.)]\s)")
_NUMBERED_ITEM_RE = re.compile(r"^\d+[.)]\s")
_DISCOURSE_MARKER_RE = re.compile(
    r"^(?:However|In conclusion|Finally|Therefore|Furthermore|Moreover|In summary|"
    r"To summarize|Consequently|Nevertheless|Meanwhile|Additionally|In contrast|"
    r"On the other hand|For example|First|Second|Third|Next|Lastly)\b"
)


@dataclass(frozen=True)
class _Unit:
    """A sentence-sized span of the source text."""

    start: int
    end: int
    text: str
    tokens: int
    paragraph_end: bool = False


class ChunkingEngine:
    """Splits documents into bounded, position-tracked chunks.

    Parameters
    ----------
    min_chunk_size:
        Minimum tokens before a semantic boundary may close a chunk, and
        the size below which paragraphs are merged forward.
    max_chunk_size:
        Hard upper bound on tokens per chunk.
    overlap_size:
        Tokens of trailing context repeated at the start of the next chunk
        when the semantic strategy cuts on size.
    token_counter:
        Token counting policy; defaults to whitespace-delimited words.
    """

    def __init__(
        self,
        min_chunk_size: int = 100,
        max_chunk_size: int = 1000,
        overlap_size: int = 50,
        token_counter: TokenCounter | None = None,
    ) -> None:
        if max_chunk_size <= 0 or min_chunk_size < 0:
            raise ConfigurationError("Chunk sizes must be positive")
        if min_chunk_size > max_chunk_size:
            raise ConfigurationError("min_chunk_size must not exceed max_chunk_size")
        if not 0 <= overlap_size < max_chunk_size:
            raise ConfigurationError("overlap_size must be smaller than max_chunk_size")
        self._min = min_chunk_size
        self._max = max_chunk_size
        self._overlap = overlap_size
        self._counter: TokenCounter = token_counter or WordTokenCounter()

    @property
    def max_chunk_size(self) -> int:
        return self._max

    @property
    def min_chunk_size(self) -> int:
        return self._min

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(
        self,
        document: Document | str,
        strategy: ChunkStrategy | str = ChunkStrategy.SEMANTIC,
    ) -> list[Chunk]:
        """Split *document* into chunks with the given *strategy*.

        Raises
        ------
        InvalidContentError
            If the document is empty or the strategy is unknown.
        """
        try:
            strategy = ChunkStrategy(strategy)
        except ValueError as exc:
            raise InvalidContentError(f"Unknown chunking strategy: {strategy!r}") from exc

        if isinstance(document, Document):
            text, document_id = document.sanitized_text, document.document_id
        else:
            text, document_id = document, str(uuid.uuid4())
        if not text or not text.strip():
            raise InvalidContentError("Cannot chunk an empty document")

        if strategy is ChunkStrategy.FIXED:
            spans = self._fixed(text)
        elif strategy is ChunkStrategy.SENTENCE:
            spans = self._sentence(self._units(text, 0, len(text)))
        elif strategy is ChunkStrategy.PARAGRAPH:
            spans = self._paragraph(text)
        else:
            spans = self._semantic(self._units(text, 0, len(text)))

        chunks: list[Chunk] = []
        for start, end, tokens in spans:
            chunk = self.create_chunk(
                text[start:end],
                text,
                index=len(chunks),
                document_id=document_id,
                strategy=strategy,
                position=(start, end),
                tokens=tokens,
            )
            if chunk is not None:
                chunks.append(chunk)

        logger.debug(
            "chunking_complete",
            document_id=document_id,
            strategy=strategy.value,
            num_chunks=len(chunks),
            avg_tokens=self._avg_tokens(chunks),
        )
        return chunks

    def create_chunk(
        self,
        content: str,
        full_text: str,
        index: int,
        document_id: str,
        strategy: ChunkStrategy,
        position: tuple[int, int] | None = None,
        tokens: int | None = None,
    ) -> Chunk | None:
        """Build one :class:`Chunk`, or ``None`` for blank *content*.

        When *position* is not given it is located in *full_text*: first the
        exact content, then its first five words, else offset 0.
        """
        if not content or not content.strip():
            return None
        content = content.strip()
        if position is None:
            start = full_text.find(content)
            if start < 0:
                start = full_text.find(" ".join(content.split()[:5]))
            start = max(start, 0)
            position = (start, start + len(content))

        normalised = " ".join(content.split()).lower()
        return Chunk(
            chunk_id=str(uuid.uuid4()),
            document_id=document_id,
            index=index,
            content=content,
            position=position,
            tokens=tokens if tokens is not None else self._counter.count(content),
            content_hash=hashlib.sha256(normalised.encode("utf-8")).hexdigest(),
            strategy=strategy,
            sentences=len(split_sentences(content)),
            words=len(words(content)),
        )

    # ------------------------------------------------------------------
    # Strategies; each returns (start, end, tokens) spans over the text.
    # ------------------------------------------------------------------

    def _semantic(self, units: list[_Unit]) -> list[tuple[int, int, int]]:
        groups = self._pack(units, boundaries=True, overlap=True)
        return [self._span(group) for group in groups]

    def _fixed(self, text: str) -> list[tuple[int, int, int]]:
        spans = self._counter.spans(text)
        out: list[tuple[int, int, int]] = []
        for i in range(0, len(spans), self._max):
            window = spans[i : i + self._max]
            out.append((window[0][0], window[-1][1], len(window)))
        return out

    def _sentence(self, units: list[_Unit]) -> list[tuple[int, int, int]]:
        # Chunks always end on a sentence boundary, so a short buffer followed
        # by a long sentence is emitted below min_chunk_size.
        out: list[tuple[int, int, int]] = []
        buffer: list[_Unit] = []
        for unit in units:
            if unit.tokens > self._max:
                self._flush(buffer, out)
                buffer = []
                out.extend(self._hard_split(unit))
                continue
            if buffer and self._tokens(buffer) + unit.tokens > self._max:
                self._flush(buffer, out)
                buffer = []
            buffer.append(unit)
        self._flush(buffer, out)
        return out

    def _paragraph(self, text: str) -> list[tuple[int, int, int]]:
        paragraphs = [self._units(text, s, e) for s, e in self._paragraph_spans(text, 0, len(text))]
        groups: list[list[_Unit]] = []
        carry: list[_Unit] = []
        for n, paragraph in enumerate(paragraphs):
            units = carry + paragraph
            carry = []
            is_last = n == len(paragraphs) - 1
            tokens = self._tokens(units)
            if tokens < self._min and not is_last:
                # Merge forward into the next paragraph.
                carry = units
                continue
            if tokens <= self._max:
                groups.append(units)
                continue
            pieces = self._pack(units)
            if not is_last and self._tokens(pieces[-1]) < self._min:
                carry = pieces.pop()
            groups.extend(pieces)

        # A small trailing remainder merges back when it fits.
        if (
            len(groups) >= 2
            and self._tokens(groups[-1]) < self._min
            and self._tokens(groups[-2]) + self._tokens(groups[-1]) <= self._max
        ):
            groups[-2:] = [groups[-2] + groups[-1]]
        return [self._span(group) for group in groups]

    def _pack(
        self,
        units: list[_Unit],
        boundaries: bool = False,
        overlap: bool = False,
    ) -> list[list[_Unit]]:
        """Pack sentence units into groups of at most ``max_chunk_size`` tokens.

        A group that already holds ``min_chunk_size`` tokens closes before a
        sentence that would overflow it (and, with *boundaries*, at a
        semantic boundary).  A smaller group is topped up to the max with the
        head of that sentence instead, so only the last group can fall below
        the minimum.  With *overlap*, a group closed on size hands its tail
        sentences to the next one.
        """
        groups: list[list[_Unit]] = []
        buffer: list[_Unit] = []
        for i, unit in enumerate(units):
            pending: _Unit | None = unit
            while pending is not None:
                used = self._tokens(buffer)
                if used + pending.tokens <= self._max:
                    buffer.append(pending)
                    pending = None
                elif buffer and used >= self._min:
                    groups.append(buffer)
                    buffer = self._overlap_tail(buffer, room=self._max - pending.tokens) if overlap else []
                else:
                    head, pending = self._split_unit(pending, self._max - used)
                    groups.append(buffer + [head])
                    buffer = []

            next_unit = units[i + 1] if i + 1 < len(units) else None
            if (
                boundaries
                and buffer
                and next_unit is not None
                and self._tokens(buffer) >= self._min
                and self._is_boundary(unit, next_unit)
            ):
                groups.append(buffer)
                buffer = []

        if buffer:
            groups.append(buffer)
        return groups

    # ------------------------------------------------------------------
    # Sentence units
    # ------------------------------------------------------------------

    def _units(self, text: str, start: int, end: int) -> list[_Unit]:
        """Return sentence units for ``text[start:end]`` with paragraph flags.

        Lines that open a block (headings, bullets, numbered items) start a
        new sentence even without a preceding terminator.
        """
        units: list[_Unit] = []
        for p_start, p_end in self._paragraph_spans(text, start, end):
            para_units: list[_Unit] = []
            for b_start, b_end in self._block_spans(text, p_start, p_end):
                for sentence in split_sentences(text[b_start:b_end]):
                    s_start = b_start + sentence.start
                    s_end = b_start + sentence.end
                    para_units.append(
                        _Unit(
                            start=s_start,
                            end=s_end,
                            text=sentence.text,
                            tokens=self._counter.count(sentence.text),
                        )
                    )
            if para_units:
                last = para_units[-1]
                para_units[-1] = _Unit(last.start, last.end, last.text, last.tokens, True)
            units.extend(para_units)
        return units

    @staticmethod
    def _paragraph_spans(text: str, start: int, end: int) -> list[tuple[int, int]]:
        spans: list[tuple[int, int]] = []
        cursor = start
        for match in _PARAGRAPH_BREAK_RE.finditer(text, start, end):
            _append_stripped(text, cursor, match.start(), spans)
            cursor = match.end()
        _append_stripped(text, cursor, end, spans)
        return spans

    @staticmethod
    def _block_spans(text: str, start: int, end: int) -> list[tuple[int, int]]:
        spans: list[tuple[int, int]] = []
        block_start = start
        offset = start
        for line in text[start:end].split("\n"):
            if offset > block_start and (_BLOCK_START_RE.match(line.lstrip()) or _is_caps_heading(line)):
                _append_stripped(text, block_start, offset - 1, spans)
                block_start = offset
            offset += len(line) + 1
        _append_stripped(text, block_start, end, spans)
        return spans

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _is_boundary(unit: _Unit, next_unit: _Unit) -> bool:
        return (
            unit.paragraph_end
            or unit.text.rstrip().endswith(":")
            or bool(_DISCOURSE_MARKER_RE.match(next_unit.text))
            or bool(_NUMBERED_ITEM_RE.match(next_unit.text))
            or _is_caps_heading(next_unit.text)
        )

    def _hard_split(self, unit: _Unit) -> list[tuple[int, int, int]]:
        spans = self._counter.spans(unit.text)
        out: list[tuple[int, int, int]] = []
        for i in range(0, len(spans), self._max):
            window = spans[i : i + self._max]
            out.append((unit.start + window[0][0], unit.start + window[-1][1], len(window)))
        return out

    def _split_unit(self, unit: _Unit, n_tokens: int) -> tuple[_Unit, _Unit | None]:
        """Cut *unit* after its first *n_tokens* tokens."""
        spans = self._counter.spans(unit.text)
        if n_tokens >= len(spans):
            return unit, None
        head_end = spans[n_tokens - 1][1]
        rest_start = spans[n_tokens][0]
        head = _Unit(unit.start, unit.start + head_end, unit.text[:head_end], n_tokens)
        rest = _Unit(
            unit.start + rest_start,
            unit.end,
            unit.text[rest_start:],
            len(spans) - n_tokens,
            unit.paragraph_end,
        )
        return head, rest

    def _overlap_tail(self, buffer: list[_Unit], room: int) -> list[_Unit]:
        """Return trailing units of *buffer* totalling at most the overlap budget."""
        budget = min(self._overlap, room)
        tail: list[_Unit] = []
        used = 0
        for unit in reversed(buffer):
            if used + unit.tokens > budget:
                break
            tail.insert(0, unit)
            used += unit.tokens
        return tail

    @staticmethod
    def _tokens(units: list[_Unit]) -> int:
        return sum(u.tokens for u in units)

    def _span(self, units: list[_Unit]) -> tuple[int, int, int]:
        return units[0].start, units[-1].end, self._tokens(units)

    def _flush(self, buffer: list[_Unit], out: list[tuple[int, int, int]]) -> None:
        if buffer:
            out.append(self._span(buffer))

    @staticmethod
    def _avg_tokens(chunks: list[Chunk]) -> int:
        if not chunks:
            return 0
        return sum(c.tokens for c in chunks) // len(chunks)


def _append_stripped(text: str, start: int, end: int, out: list[tuple[int, int]]) -> None:
    segment = text[start:end]
    if not segment.strip():
        return
    lead = len(segment) - len(segment.lstrip())
    trail = len(segment) - len(segment.rstrip())
    out.append((start + lead, end - trail))


def _is_caps_heading(line: str) -> bool:
    stripped = line.strip()
    letters = [c for c in stripped if c.isalpha()]
    return len(letters) >= 3 and stripped.isupper() and len(stripped.split()) <= 12
