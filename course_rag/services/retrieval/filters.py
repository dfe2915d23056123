"""Caller-facing filter dict -> driver-neutral :class:`PayloadFilter`.

Only these keys are recognised; they are combined with logical AND:

=================  ======================================  ==================
key                condition                               payload field
=================  ======================================  ==================
``course_id``      exact match                             ``course_id``
``resource_ids``   any-of                                  ``resource_id``
``min_quality``    ``>=``                                  ``quality_score``
``max_quality``    ``<=``                                  ``quality_score``
``language``       exact match                             ``language``
``content_type``   exact match                             ``content_type``
``date_from``      ``>=`` (ISO-8601)                       ``created_at``
``date_to``        ``<=`` (ISO-8601, whole day if a date)  ``created_at``
=================  ======================================  ==================

camelCase spellings (``courseId``, ``minQuality`` ...) are accepted as
aliases.  Any other key is ignored and reported back so the caller can log
it; unknown keys are never matched against arbitrary payload fields.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from course_rag.interfaces.vector_store_provider import FieldCondition, PayloadFilter

RECOGNISED_KEYS = frozenset(
    {
        "course_id",
        "resource_ids",
        "min_quality",
        "max_quality",
        "language",
        "content_type",
        "date_from",
        "date_to",
    }
)

_ALIASES = {
    "courseId": "course_id",
    "resourceIds": "resource_ids",
    "minQuality": "min_quality",
    "maxQuality": "max_quality",
    "contentType": "content_type",
    "dateFrom": "date_from",
    "dateTo": "date_to",
}


def normalise_filters(filters: dict[str, Any] | None) -> tuple[dict[str, Any], list[str]]:
    """Return ``(recognised, ignored_keys)``; ``None`` values are dropped."""
    recognised: dict[str, Any] = {}
    ignored: list[str] = []
    for key, value in (filters or {}).items():
        canonical = _ALIASES.get(key, key)
        if canonical not in RECOGNISED_KEYS:
            ignored.append(key)
            continue
        if value is None:
            continue
        if canonical == "resource_ids":
            if isinstance(value, str):
                value = [value]
            value = list(value)
            if not value:
                continue
        recognised[canonical] = value
    return recognised, ignored


def build_payload_filter(filters: dict[str, Any] | None) -> tuple[PayloadFilter, list[str]]:
    """Build the conjunctive payload filter for *filters*.

    Returns the filter together with the list of ignored (unrecognised) keys.
    """
    recognised, ignored = normalise_filters(filters)
    conditions: list[FieldCondition] = []

    if "course_id" in recognised:
        conditions.append(FieldCondition(key="course_id", match=recognised["course_id"]))
    if "resource_ids" in recognised:
        conditions.append(
            FieldCondition(key="resource_id", any=tuple(recognised["resource_ids"]))
        )
    if "min_quality" in recognised or "max_quality" in recognised:
        conditions.append(
            FieldCondition(
                key="quality_score",
                gte=_as_float(recognised.get("min_quality")),
                lte=_as_float(recognised.get("max_quality")),
            )
        )
    if "language" in recognised:
        conditions.append(FieldCondition(key="language", match=recognised["language"]))
    if "content_type" in recognised:
        conditions.append(FieldCondition(key="content_type", match=recognised["content_type"]))
    if "date_from" in recognised or "date_to" in recognised:
        conditions.append(
            FieldCondition(
                key="created_at",
                gte=_iso_bound(recognised.get("date_from"), end_of_day=False),
                lte=_iso_bound(recognised.get("date_to"), end_of_day=True),
            )
        )

    return PayloadFilter(must=tuple(conditions)), ignored


def _as_float(value: Any) -> float | None:
    return None if value is None else float(value)


def _iso_bound(value: Any, end_of_day: bool) -> str | None:
    """Render a date bound as a string comparable with ISO ``created_at`` values."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        value = value.isoformat()
    text = str(value)
    if len(text) == 10 and end_of_day:
        return f"{text}T23:59:59.999999"
    return text
