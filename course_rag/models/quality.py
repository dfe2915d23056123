"""Quality-assessment models.

A :class:`QualityReport` is computed once per ingestion by
:class:`~course_rag.services.ingestion.quality_assessor.QualityAssessor` and
decides whether a document passes the ingestion quality gate.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CoherenceLevel(str, Enum):
    EXCELLENT = "Excellent"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"


class QualityIssue(BaseModel):
    """A structural defect detected in the document text."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(description='e.g. "encoding", "boilerplate", "truncation".')
    severity: Severity
    message: str = ""
    count: int = Field(default=1, ge=1)


class ReadabilityScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: float = Field(ge=0.0, le=100.0, description="Mean of normalised metrics.")
    flesch_reading_ease: float = 0.0
    gunning_fog: float = 0.0
    smog: float = 0.0
    automated_readability_index: float = 0.0
    level: str = Field(default="standard", description='e.g. "very easy", "difficult".')


class CoherenceScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: float = Field(ge=0.0, le=1.0)
    level: CoherenceLevel
    pair_scores: list[float] = Field(default_factory=list)


class QualityReport(BaseModel):
    """Per-document quality scores and the recommendations they trigger."""

    model_config = ConfigDict(frozen=True)

    readability: ReadabilityScore
    coherence: CoherenceScore
    completeness: float = Field(ge=0.0, le=1.0)
    errors: list[QualityIssue] = Field(default_factory=list)
    error_penalty: float = Field(default=0.0, ge=0.0, le=100.0)
    overall_score: float = Field(ge=0.0, le=100.0)
    recommendations: list[str] = Field(default_factory=list)

    @property
    def has_high_severity_errors(self) -> bool:
        return any(e.severity is Severity.HIGH for e in self.errors)
