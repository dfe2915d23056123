"""Document ingestion for the course knowledge base.

Pipeline: **sanitize -> chunk -> assess -> gate -> embed -> index -> record**.

1. **Sanitize** (sanitizer.py / Sanitizer) -- Normalises whitespace, quotes
   and dashes, strips control and zero-width characters, drops duplicate
   paragraphs, and extracts title, language, key phrases and structure.

2. **Chunk** (chunker.py / ChunkingEngine) -- Splits the sanitized text with
   one of four strategies (semantic, fixed, sentence, paragraph) into
   chunks bounded by min/max token sizes.

3. **Assess** (quality_assessor.py / QualityAssessor) -- Scores readability,
   inter-chunk coherence and completeness, detects content errors, and
   produces a 0-100 overall score plus recommendations.

4. **Gate / embed / index** (ingestion_service.py / IngestionService) --
   Rejects documents below the quality threshold, embeds chunk batches with
   bounded concurrency, and writes each chunk to the vector and keyword
   indexes.
"""

from course_rag.services.ingestion.chunker import ChunkingEngine
from course_rag.services.ingestion.ingestion_service import IngestionService
from course_rag.services.ingestion.quality_assessor import QualityAssessor, QualityConfig
from course_rag.services.ingestion.sanitizer import Sanitizer

__all__ = [
    "ChunkingEngine",
    "IngestionService",
    "QualityAssessor",
    "QualityConfig",
    "Sanitizer",
]
