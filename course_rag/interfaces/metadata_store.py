"""Abstract base class for the ingestion metadata store, plus its query builder.

The core writes one :class:`~course_rag.models.ingestion.MetadataRecord` per
successfully ingested document so external reporting tools can correlate
indexed chunks with their source resources.  Reads go through
:class:`MetadataQuery`, an explicit fluent builder::

    rows = await (
        store.table("embedding_metadata")
        .select("resource_id", "chunk_count")
        .eq("course_id", "c-1")
        .order_by("created_at", descending=True)
        .limit(10)
        .execute()
    )

The builder validates identifiers and method order as it is built, so a
malformed query fails at the call that made it malformed.
"""

from __future__ import annotations

import dataclasses
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from course_rag.models.ingestion import MetadataRecord

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_OPERATORS = {"eq": "=", "gte": ">=", "lte": "<=", "neq": "!="}


def _check_identifier(name: str) -> str:
    if not _IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid identifier: {name!r}")
    return name


@dataclass(frozen=True)
class MetadataQuery:
    """Immutable SELECT builder; every method returns a new query."""

    table_name: str
    columns: tuple[str, ...] = ()
    conditions: tuple[tuple[str, str, Any], ...] = ()
    ordering: tuple[str, bool] | None = None
    row_limit: int | None = None
    executor: "IMetadataStore | None" = dataclasses.field(default=None, compare=False)

    @classmethod
    def from_table(cls, table: str, executor: "IMetadataStore | None" = None) -> "MetadataQuery":
        return cls(table_name=_check_identifier(table), executor=executor)

    def select(self, *columns: str) -> "MetadataQuery":
        if self.conditions or self.ordering or self.row_limit is not None:
            raise ValueError("select() must come before filters, order_by() and limit()")
        return dataclasses.replace(
            self, columns=tuple(_check_identifier(c) for c in columns)
        )

    def eq(self, column: str, value: Any) -> "MetadataQuery":
        return self._where("eq", column, value)

    def neq(self, column: str, value: Any) -> "MetadataQuery":
        return self._where("neq", column, value)

    def gte(self, column: str, value: Any) -> "MetadataQuery":
        return self._where("gte", column, value)

    def lte(self, column: str, value: Any) -> "MetadataQuery":
        return self._where("lte", column, value)

    def order_by(self, column: str, descending: bool = False) -> "MetadataQuery":
        if self.row_limit is not None:
            raise ValueError("order_by() must come before limit()")
        return dataclasses.replace(self, ordering=(_check_identifier(column), descending))

    def limit(self, n: int) -> "MetadataQuery":
        if n <= 0:
            raise ValueError("limit() must be positive")
        return dataclasses.replace(self, row_limit=n)

    def to_sql(self) -> tuple[str, list[Any]]:
        """Compile to a parameterised SQL statement."""
        cols = ", ".join(self.columns) if self.columns else "*"
        sql = f"SELECT {cols} FROM {self.table_name}"
        params: list[Any] = []
        if self.conditions:
            clauses = []
            for column, op, value in self.conditions:
                clauses.append(f"{column} {_OPERATORS[op]} ?")
                params.append(value)
            sql += " WHERE " + " AND ".join(clauses)
        if self.ordering:
            column, descending = self.ordering
            sql += f" ORDER BY {column} {'DESC' if descending else 'ASC'}"
        if self.row_limit is not None:
            sql += " LIMIT ?"
            params.append(self.row_limit)
        return sql, params

    async def execute(self) -> list[dict[str, Any]]:
        if self.executor is None:
            raise ValueError("Query is not bound to a metadata store")
        return await self.executor.fetch(self)

    def _where(self, op: str, column: str, value: Any) -> "MetadataQuery":
        if self.ordering is not None or self.row_limit is not None:
            raise ValueError("Filters must come before order_by() and limit()")
        return dataclasses.replace(
            self, conditions=(*self.conditions, (_check_identifier(column), op, value))
        )


class IMetadataStore(ABC):
    """Contract for the write-mostly ingestion metadata store."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables / indices if they do not exist.  Idempotent."""

    @abstractmethod
    async def record(self, record: MetadataRecord) -> None:
        """Persist one metadata row for an ingested document."""

    @abstractmethod
    async def fetch(self, query: MetadataQuery) -> list[dict[str, Any]]:
        """Execute *query* and return rows as dicts.

        Raises
        ------
        ValueError
            If the query references an unknown table or column.
        """

    @abstractmethod
    async def clear(self) -> None:
        """Delete every row (used by pipeline reset)."""

    def table(self, name: str) -> MetadataQuery:
        """Start a query against table *name* bound to this store."""
        return MetadataQuery.from_table(name, executor=self)
