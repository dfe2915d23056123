"""Shared text-analysis primitives.

Sentence splitting, lexical tokenization, stopword lists, syllable counting
and TF-IDF weighting live here because four components depend on them with
identical semantics: the sanitizer (language and key phrases), the chunker
(sentence boundaries), the quality assessor (readability and coherence) and
the keyword index (BM25 terms).

All regexes are compiled once at import time.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from dataclasses import dataclass

# Abbreviations whose trailing period does not end a sentence.
_ABBREVIATIONS = (
    "Dr", "Mr", "Mrs", "Ms", "Prof", "Jr", "Sr", "St", "Ave", "Vol", "No",
    "Fig", "vs", "etc", "approx", "dept", "est", "inc", "ltd", "co", "cf",
)
_ABBREV_RE = re.compile(r"\b(" + "|".join(_ABBREVIATIONS) + r")\.")
_DOTTED_ABBREV_RE = re.compile(r"\b(e\.g|i\.e|a\.m|p\.m|U\.S)\.", re.IGNORECASE)
_DECIMAL_RE = re.compile(r"(?<=\d)\.(?=\d)")
_SENTENCE_END_RE = re.compile(r"[.!?]+[\"'”’)\]]*(?=\s|$)")

_WORD_RE = re.compile(r"[^\W_]+(?:['’][^\W_]+)*")
_ALPHA_WORD_RE = re.compile(r"[^\W\d_]+(?:['’][^\W\d_]+)*")

_SYLLABLE_SUFFIX_RE = re.compile(r"(?:[^laeiouy]es|ed|[^laeiouy]e)$")
_LEADING_Y_RE = re.compile(r"^y")
_VOWEL_GROUP_RE = re.compile(r"[aeiouy]{1,2}")

STOPWORDS: dict[str, frozenset[str]] = {
    "en": frozenset(
        "a about above after again against all am an and any are as at be because been "
        "before being below between both but by can could did do does doing down during "
        "each few for from further had has have having he her here hers him his how i if "
        "in into is it its itself just me more most my no nor not now of off on once only "
        "or other our ours out over own same she should so some such than that the their "
        "them then there these they this those through to too under until up very was we "
        "were what when where which while who whom why will with would you your".split()
    ),
    "es": frozenset(
        "el la los las de del y en que un una por con para es se no al lo como mas pero "
        "sus le ya o este esta entre cuando muy sin sobre tambien me hasta hay donde "
        "quien desde todo nos durante todos uno les ni contra otros ese eso ante ellos".split()
    ),
    "fr": frozenset(
        "le la les de des du et en un une est que qui dans pour pas sur au aux avec ce "
        "ces il elle ils elles nous vous par plus ne se son sa ses leur leurs mais ou "
        "comme tout etre sont cette aussi entre sans".split()
    ),
    "de": frozenset(
        "der die das und ist nicht ein eine zu den dem des mit sich auf fur im von "
        "auch es an werden aus er hat dass sie nach wird bei einer um am sind noch wie "
        "einem uber einen so zum war haben nur oder aber vor zur bis mehr durch".split()
    ),
    "it": frozenset(
        "il lo la i gli le di del della dei delle e che un una per con non sono nel "
        "nella da al alla come anche piu ma se questo questa tra essere ha hanno".split()
    ),
    "pt": frozenset(
        "o a os as de do da dos das e que um uma para com nao em no na nos nas por "
        "mais se como mas ao ele ela isso esta ser tem foi sao seu sua entre".split()
    ),
    "nl": frozenset(
        "de het een en van in is dat op te zijn met voor niet aan er maar om ook als "
        "dan bij nog wel naar uit kan door over heeft worden wordt deze dit".split()
    ),
}
ALL_STOPWORDS: frozenset[str] = frozenset().union(*STOPWORDS.values())


@dataclass(frozen=True)
class SentenceSpan:
    """A sentence and its ``[start, end)`` character offsets in the source."""

    text: str
    start: int
    end: int


# ---------------------------------------------------------------------------
# Sentences
# ---------------------------------------------------------------------------

def split_sentences(text: str) -> list[SentenceSpan]:
    """Split *text* into sentences, respecting common abbreviations.

    Periods after known abbreviations, inside dotted abbreviations
    (``e.g.``) and between digits are masked with ``\\x00`` first, which
    keeps indices aligned with the original text.  Trailing text without a
    terminator becomes a final sentence.
    """
    if not text or not text.strip():
        return []

    masked = _ABBREV_RE.sub(lambda m: m.group(1) + "\x00", text)
    masked = _DOTTED_ABBREV_RE.sub(lambda m: m.group(0).replace(".", "\x00"), masked)
    masked = _DECIMAL_RE.sub("\x00", masked)

    sentences: list[SentenceSpan] = []
    last = 0
    for match in _SENTENCE_END_RE.finditer(masked):
        _append_span(text, last, match.end(), sentences)
        last = match.end()
    _append_span(text, last, len(text), sentences)
    return sentences


def _append_span(text: str, start: int, end: int, out: list[SentenceSpan]) -> None:
    segment = text[start:end]
    stripped = segment.strip()
    if not stripped:
        return
    lead = len(segment) - len(segment.lstrip())
    begin = start + lead
    out.append(SentenceSpan(text=stripped, start=begin, end=begin + len(stripped)))


def ends_with_terminator(text: str) -> bool:
    """Return ``True`` when *text* ends on sentence-final punctuation."""
    return bool(re.search(r"[.!?][\"'”’)\]]*\s*$", text or ""))


# ---------------------------------------------------------------------------
# Words, stopwords, syllables
# ---------------------------------------------------------------------------

def words(text: str) -> list[str]:
    """Return word tokens (letters and digits) in their original case."""
    return _WORD_RE.findall(text or "")


def alpha_words(text: str) -> list[str]:
    """Return purely alphabetic word tokens, used for readability formulas."""
    return _ALPHA_WORD_RE.findall(text or "")


def content_terms(text: str, min_length: int = 1) -> list[str]:
    """Return lowercase word tokens with stopwords (all languages) removed."""
    return [
        w
        for w in (t.lower() for t in words(text))
        if w not in ALL_STOPWORDS and len(w) >= min_length
    ]


def count_syllables(word: str) -> int:
    """Estimate syllables by counting vowel groups after trimming silent endings."""
    w = word.lower()
    if len(w) <= 3:
        return 1
    w = _SYLLABLE_SUFFIX_RE.sub("", w)
    w = _LEADING_Y_RE.sub("", w)
    return max(1, len(_VOWEL_GROUP_RE.findall(w)))


def detect_language(text: str, sample_words: int = 1000) -> str:
    """Guess the ISO-639-1 language of *text* from stopword frequency.

    Returns ``"en"`` when there is Latin-script text but no stopword signal,
    and ``"unknown"`` when the text has no Latin letters at all.
    """
    tokens = [w.lower() for w in words(text)[:sample_words]]
    if not tokens:
        return "unknown"
    hits = {lang: sum(1 for t in tokens if t in stops) for lang, stops in STOPWORDS.items()}
    best_lang, best_hits = max(hits.items(), key=lambda kv: (kv[1], kv[0] == "en"))
    if best_hits == 0:
        return "en" if re.search(r"[A-Za-z]", text) else "unknown"
    return best_lang


# ---------------------------------------------------------------------------
# TF-IDF
# ---------------------------------------------------------------------------

def tf_idf_vectors(documents: list[list[str]]) -> list[dict[str, float]]:
    """Return one sparse TF-IDF vector per tokenized document.

    IDF is smoothed (``ln((1 + N) / (1 + df)) + 1``) so terms shared by every
    document keep a positive weight; otherwise two chunks that share all of
    their vocabulary would score zero similarity.
    """
    n_docs = len(documents)
    doc_freq: Counter[str] = Counter()
    for tokens in documents:
        doc_freq.update(set(tokens))

    vectors: list[dict[str, float]] = []
    for tokens in documents:
        counts = Counter(tokens)
        total = sum(counts.values())
        if total == 0:
            vectors.append({})
            continue
        vectors.append(
            {
                term: (count / total) * (math.log((1 + n_docs) / (1 + doc_freq[term])) + 1.0)
                for term, count in counts.items()
            }
        )
    return vectors


def cosine_similarity(a: dict[str, float], b: dict[str, float]) -> float:
    """Cosine similarity of two sparse vectors; ``0.0`` if either is empty."""
    if not a or not b:
        return 0.0
    if len(a) > len(b):
        a, b = b, a
    dot = sum(weight * b.get(term, 0.0) for term, weight in a.items())
    norm_a = math.sqrt(sum(v * v for v in a.values()))
    norm_b = math.sqrt(sum(v * v for v in b.values()))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)


def sparse_dot(a: dict, b: dict) -> float:
    """Dot product of two sparse ``{key: weight}`` maps."""
    if len(a) > len(b):
        a, b = b, a
    return sum(weight * b.get(key, 0.0) for key, weight in a.items())
