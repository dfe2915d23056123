"""Best-effort parsing of JSON returned by external services.

Model-backed services sometimes wrap JSON in Markdown fences, leave trailing
commas, or stop mid-object when they hit an output limit.  The repair pass
handles exactly those three cases:

1. Extract the outermost ``{...}`` / ``[...]`` span (fences and chatter
   around it are discarded).
2. Strip trailing commas before ``}`` or ``]``.
3. Close any unbalanced braces/brackets, ignoring characters inside string
   literals, and terminate an unterminated string.

Anything still unparseable raises :class:`ParseError`.
"""

from __future__ import annotations

import json
import re
from typing import Any

import structlog

from course_rag.utils.errors import ParseError

logger = structlog.get_logger(logger_name=__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_CLOSERS = {"{": "}", "[": "]"}


def parse_json_response(text: str, provider_name: str | None = None) -> Any:
    """Parse *text* as JSON, attempting a structural repair on failure.

    Raises
    ------
    ParseError
        If the text contains no JSON value or cannot be repaired.
    """
    if not text or not text.strip():
        raise ParseError(message="Empty response body", provider_name=provider_name)

    candidate = _extract_json_span(text)
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as first_exc:
        repaired = repair_json(candidate)
        try:
            result = json.loads(repaired)
        except json.JSONDecodeError as exc:
            raise ParseError(
                message=f"Unrecoverable JSON response: {exc.msg} (original: {first_exc.msg})",
                provider_name=provider_name,
            ) from exc
        logger.info("json_response_repaired", provider=provider_name, original_error=first_exc.msg)
        return result


def repair_json(text: str) -> str:
    """Return *text* with trailing commas removed and brackets balanced."""
    cleaned = _TRAILING_COMMA_RE.sub(r"\1", text.strip())

    stack: list[str] = []
    in_string = False
    escaped = False
    for ch in cleaned:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in ("}", "]") and stack and stack[-1] == ch:
            stack.pop()

    if in_string:
        cleaned += '"'
    # A dangling comma may precede the closers we are about to add.
    cleaned = cleaned.rstrip().rstrip(",")
    return cleaned + "".join(reversed(stack))


def _extract_json_span(text: str) -> str:
    fenced = _FENCE_RE.search(text)
    if fenced:
        text = fenced.group(1)

    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return text.strip()
    start = min(starts)
    opener = text[start]
    end = text.rfind(_CLOSERS[opener])
    if end > start:
        return text[start : end + 1]
    # Truncated: keep everything from the opener and let repair close it.
    return text[start:]
