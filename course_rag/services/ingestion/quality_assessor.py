"""Document quality assessment.

Scores a sanitized document and its chunks on four dimensions and combines
them into the ``overall_score`` used by the ingestion quality gate:

* **readability** -- Flesch Reading Ease, Gunning Fog, SMOG and ARI over
  the sanitized text, each normalised to 0-100 and averaged;
* **coherence** -- mean TF-IDF cosine similarity of adjacent chunks;
* **completeness** -- share of chunks ending on sentence-final punctuation;
* **errors** -- structural defects (encoding damage, truncation, repeated
  boilerplate ...) that subtract a capped severity-weighted penalty.

Every threshold and weight lives in :class:`QualityConfig`.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from dataclasses import dataclass

import structlog

from course_rag.models.document import Document
from course_rag.models.quality import (
    CoherenceLevel,
    CoherenceScore,
    QualityIssue,
    QualityReport,
    ReadabilityScore,
    Severity,
)
from course_rag.models.rag import Chunk
from course_rag.utils.text_analysis import (
    alpha_words,
    content_terms,
    cosine_similarity,
    count_syllables,
    ends_with_terminator,
    split_sentences,
    tf_idf_vectors,
)

logger = structlog.get_logger(logger_name=__name__)

_NON_WORD_RE = re.compile(r"[^\w\s]")
_REPLACEMENT_CHAR = chr(0xFFFD)
_ELLIPSIS = chr(0x2026)

_READABILITY_LEVELS = (
    (90.0, "very easy"),
    (80.0, "easy"),
    (70.0, "fairly easy"),
    (60.0, "standard"),
    (50.0, "fairly difficult"),
    (30.0, "difficult"),
)

_RECOMMEND_READABILITY = "Consider simplifying complex sentences and reducing technical jargon"
_RECOMMEND_COHERENCE = "Improve transitions between sections for better flow"
_RECOMMEND_COMPLETENESS = "Some content may have been lost or cut mid-sentence during processing"
_RECOMMEND_ERRORS = "Fix high-severity content issues before ingesting: {types}"


@dataclass(frozen=True)
class QualityConfig:
    """Thresholds and weights for :class:`QualityAssessor`."""

    coherence_excellent: float = 0.8
    coherence_good: float = 0.6
    coherence_fair: float = 0.4

    readability_weight: float = 0.3
    coherence_weight: float = 0.3
    completeness_weight: float = 0.2
    error_weight: float = 0.2

    penalty_high: float = 40.0
    penalty_medium: float = 20.0
    penalty_low: float = 10.0
    max_penalty: float = 100.0

    recommend_readability_below: float = 50.0
    recommend_coherence_below: float = 0.5
    recommend_completeness_below: float = 0.7

    boilerplate_max_tokens: int = 3
    boilerplate_min_repeats: int = 3
    special_char_ratio: float = 0.3
    duplicate_line_length: int = 50
    duplicate_line_limit: int = 5


class QualityAssessor:
    """Computes a :class:`QualityReport` for a document and its chunks."""

    def __init__(self, config: QualityConfig | None = None) -> None:
        self._config = config or QualityConfig()

    def assess(self, document: Document | str, chunks: list[Chunk]) -> QualityReport:
        text = document.sanitized_text if isinstance(document, Document) else document
        cfg = self._config

        readability = self.readability(text)
        coherence = self.coherence(chunks)
        completeness = self.completeness(chunks)
        errors = self.detect_errors(text)

        penalty = min(
            cfg.max_penalty,
            sum(self._severity_weight(e.severity) for e in errors),
        )
        overall = (
            cfg.readability_weight * readability.score
            + cfg.coherence_weight * coherence.score * 100
            + cfg.completeness_weight * completeness * 100
            + cfg.error_weight * (100 - penalty)
        )
        overall = _clamp(overall, 0.0, 100.0)

        report = QualityReport(
            readability=readability,
            coherence=coherence,
            completeness=completeness,
            errors=errors,
            error_penalty=penalty,
            overall_score=round(overall, 2),
            recommendations=self._recommendations(readability, coherence, completeness, errors),
        )
        logger.debug(
            "quality_assessed",
            document_id=document.document_id if isinstance(document, Document) else None,
            overall_score=report.overall_score,
            readability=readability.score,
            coherence=coherence.score,
            completeness=completeness,
            errors=[e.type for e in errors],
        )
        return report

    # ------------------------------------------------------------------
    # Readability
    # ------------------------------------------------------------------

    def readability(self, text: str) -> ReadabilityScore:
        word_list = alpha_words(text)
        if not word_list:
            return ReadabilityScore(score=0.0, level="very difficult")

        n_words = len(word_list)
        n_sentences = max(1, len(split_sentences(text)))
        syllables = [count_syllables(w) for w in word_list]
        n_syllables = sum(syllables)
        polysyllables = sum(1 for s in syllables if s >= 3)
        n_chars = sum(len(w) for w in word_list)

        words_per_sentence = n_words / n_sentences
        flesch = 206.835 - 1.015 * words_per_sentence - 84.6 * (n_syllables / n_words)
        fog = 0.4 * (words_per_sentence + 100.0 * polysyllables / n_words)
        smog = 1.0430 * math.sqrt(polysyllables * (30.0 / n_sentences)) + 3.1291
        ari = 4.71 * (n_chars / n_words) + 0.5 * words_per_sentence - 21.43

        normalised = [
            _clamp(flesch, 0.0, 100.0),
            _grade_to_score(fog),
            _grade_to_score(smog),
            _grade_to_score(ari),
        ]
        score = sum(normalised) / len(normalised)
        return ReadabilityScore(
            score=round(score, 2),
            flesch_reading_ease=round(flesch, 2),
            gunning_fog=round(fog, 2),
            smog=round(smog, 2),
            automated_readability_index=round(ari, 2),
            level=_readability_level(score),
        )

    # ------------------------------------------------------------------
    # Coherence / completeness
    # ------------------------------------------------------------------

    def coherence(self, chunks: list[Chunk]) -> CoherenceScore:
        if len(chunks) <= 1:
            return CoherenceScore(score=1.0, level=self._coherence_level(1.0))
        vectors = tf_idf_vectors([content_terms(c.content) for c in chunks])
        pairs = [
            round(cosine_similarity(vectors[i], vectors[i + 1]), 4)
            for i in range(len(vectors) - 1)
        ]
        score = _clamp(sum(pairs) / len(pairs), 0.0, 1.0)
        return CoherenceScore(score=score, level=self._coherence_level(score), pair_scores=pairs)

    @staticmethod
    def completeness(chunks: list[Chunk]) -> float:
        if not chunks:
            return 0.0
        return sum(1 for c in chunks if ends_with_terminator(c.content)) / len(chunks)

    def _coherence_level(self, score: float) -> CoherenceLevel:
        cfg = self._config
        if score >= cfg.coherence_excellent:
            return CoherenceLevel.EXCELLENT
        if score >= cfg.coherence_good:
            return CoherenceLevel.GOOD
        if score >= cfg.coherence_fair:
            return CoherenceLevel.FAIR
        return CoherenceLevel.POOR

    # ------------------------------------------------------------------
    # Error detection
    # ------------------------------------------------------------------

    def detect_errors(self, text: str) -> list[QualityIssue]:
        cfg = self._config
        errors: list[QualityIssue] = []

        replacements = text.count(_REPLACEMENT_CHAR)
        if replacements:
            errors.append(
                QualityIssue(
                    type="encoding",
                    severity=Severity.HIGH,
                    message="Replacement characters indicate encoding damage",
                    count=replacements,
                )
            )

        short = Counter(
            " ".join(s.text.lower().split())
            for s in split_sentences(text)
            if len(s.text.split()) < cfg.boilerplate_max_tokens
        )
        repeated = [s for s, n in short.items() if n > cfg.boilerplate_min_repeats]
        if repeated:
            errors.append(
                QualityIssue(
                    type="boilerplate",
                    severity=Severity.LOW,
                    message=f"Repeated short fragments: {', '.join(sorted(repeated)[:3])}",
                    count=len(repeated),
                )
            )

        stripped = text.rstrip()
        if stripped.endswith("...") or stripped.endswith(_ELLIPSIS):
            errors.append(
                QualityIssue(
                    type="truncation",
                    severity=Severity.HIGH,
                    message="Content appears to be truncated",
                )
            )

        if text and len(_NON_WORD_RE.findall(text)) / len(text) > cfg.special_char_ratio:
            errors.append(
                QualityIssue(
                    type="formatting",
                    severity=Severity.LOW,
                    message="High ratio of special characters",
                )
            )

        seen: set[str] = set()
        duplicates = 0
        for line in text.split("\n"):
            if len(line) <= cfg.duplicate_line_length:
                continue
            if line in seen:
                duplicates += 1
            seen.add(line)
        if duplicates > cfg.duplicate_line_limit:
            errors.append(
                QualityIssue(
                    type="duplication",
                    severity=Severity.MEDIUM,
                    message=f"Found {duplicates} duplicate lines",
                    count=duplicates,
                )
            )

        return errors

    def _severity_weight(self, severity: Severity) -> float:
        cfg = self._config
        return {
            Severity.HIGH: cfg.penalty_high,
            Severity.MEDIUM: cfg.penalty_medium,
            Severity.LOW: cfg.penalty_low,
        }[severity]

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    def _recommendations(
        self,
        readability: ReadabilityScore,
        coherence: CoherenceScore,
        completeness: float,
        errors: list[QualityIssue],
    ) -> list[str]:
        cfg = self._config
        recommendations: list[str] = []
        if readability.score < cfg.recommend_readability_below:
            recommendations.append(_RECOMMEND_READABILITY)
        if coherence.score < cfg.recommend_coherence_below:
            recommendations.append(_RECOMMEND_COHERENCE)
        if completeness < cfg.recommend_completeness_below:
            recommendations.append(_RECOMMEND_COMPLETENESS)
        high = sorted({e.type for e in errors if e.severity is Severity.HIGH})
        if high:
            recommendations.append(_RECOMMEND_ERRORS.format(types=", ".join(high)))
        return recommendations


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _grade_to_score(grade: float) -> float:
    """Map a US grade level onto 0-100 (grade 0 -> 100, grade 20+ -> 0)."""
    return _clamp((20.0 - grade) * 5.0, 0.0, 100.0)


def _readability_level(score: float) -> str:
    for threshold, label in _READABILITY_LEVELS:
        if score >= threshold:
            return label
    return "very difficult"
