"""SQLite-backed ingestion metadata store.

Writes one row per successfully ingested document to a local SQLite
database (``data/ingestion_metadata.db`` by default) using ``aiosqlite``.
Rows are read back through :class:`MetadataQuery`; only the known table and
its columns may be referenced.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from course_rag.interfaces.metadata_store import IMetadataStore, MetadataQuery
from course_rag.models.ingestion import MetadataRecord

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/ingestion_metadata.db")

TABLE_NAME = "embedding_metadata"

_COLUMNS = frozenset(
    {
        "id",
        "course_id",
        "resource_id",
        "document_id",
        "chunk_count",
        "quality_score",
        "embedding_model",
        "chunk_strategy",
        "language",
        "created_at",
    }
)

_CREATE_TABLE_SQL = f"""\
CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    course_id        TEXT,
    resource_id      TEXT,
    document_id      TEXT    NOT NULL,
    chunk_count      INTEGER NOT NULL,
    quality_score    REAL    NOT NULL,
    embedding_model  TEXT    NOT NULL DEFAULT '',
    chunk_strategy   TEXT    NOT NULL DEFAULT '',
    language         TEXT    NOT NULL DEFAULT 'en',
    created_at       TEXT    NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    f"CREATE INDEX IF NOT EXISTS idx_meta_course ON {TABLE_NAME}(course_id);",
    f"CREATE INDEX IF NOT EXISTS idx_meta_resource ON {TABLE_NAME}(resource_id);",
    f"CREATE INDEX IF NOT EXISTS idx_meta_created ON {TABLE_NAME}(created_at);",
]

_INSERT_SQL = f"""\
INSERT INTO {TABLE_NAME} (
    course_id, resource_id, document_id, chunk_count, quality_score,
    embedding_model, chunk_strategy, language, created_at
)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
"""


class SQLiteMetadataStore(IMetadataStore):
    """Ingestion metadata persisted to SQLite."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("metadata_db_initialized", path=str(self._db_path))

    async def record(self, record: MetadataRecord) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _INSERT_SQL,
                (
                    record.course_id,
                    record.resource_id,
                    record.document_id,
                    record.chunk_count,
                    record.quality_score,
                    record.embedding_model,
                    record.chunk_strategy,
                    record.language,
                    record.created_at,
                ),
            )
            await db.commit()
        logger.debug(
            "metadata_recorded",
            course_id=record.course_id,
            resource_id=record.resource_id,
            chunk_count=record.chunk_count,
        )

    async def fetch(self, query: MetadataQuery) -> list[dict[str, Any]]:
        self._validate(query)
        sql, params = query.to_sql()
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
        return [dict(r) for r in rows]

    async def clear(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            # Reset may run before initialize().
            await db.execute(_CREATE_TABLE_SQL)
            await db.execute(f"DELETE FROM {TABLE_NAME}")
            await db.commit()
        logger.info("metadata_db_cleared", path=str(self._db_path))

    @staticmethod
    def _validate(query: MetadataQuery) -> None:
        if query.table_name != TABLE_NAME:
            raise ValueError(f"Unknown table: {query.table_name!r}")
        referenced = set(query.columns) | {c for c, _, _ in query.conditions}
        if query.ordering is not None:
            referenced.add(query.ordering[0])
        unknown = referenced - _COLUMNS
        if unknown:
            raise ValueError(f"Unknown column(s): {', '.join(sorted(unknown))}")
