"""Thin async HTTP client for the Jina AI REST API.

Shared by :class:`JinaEmbeddingProvider` and :class:`JinaRerankerProvider`.
Owns the three concerns both need identically:

* bearer-token headers on an injected ``httpx.AsyncClient``
* mapping HTTP / transport failures onto :class:`ExternalServiceError`
  (with ``Retry-After`` honoured on 429)
* retrying transient failures through :func:`retry_async`

Response bodies go through :func:`parse_json_response`, so a truncated or
fenced JSON body is repaired before it is declared a :class:`ParseError`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
import structlog

from course_rag.utils.errors import ExternalServiceError
from course_rag.utils.json_repair import parse_json_response
from course_rag.utils.retry import RetryPolicy, retry_async

if TYPE_CHECKING:
    from course_rag.config.settings import Settings

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_BASE_URL = "https://api.jina.ai/v1"


class JinaAPIClient:
    """POSTs JSON to Jina endpoints with retry and error mapping.

    Parameters
    ----------
    api_key:
        Jina API key (``jina_...``).
    http_client:
        Shared ``httpx.AsyncClient``; created with *timeout* when omitted.
    base_url:
        API root, without trailing slash.
    retry_policy:
        Backoff settings for transient failures.
    """

    def __init__(
        self,
        api_key: str,
        http_client: httpx.AsyncClient | None = None,
        base_url: str = _DEFAULT_BASE_URL,
        retry_policy: RetryPolicy | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._api_key = api_key
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self._base_url = base_url.rstrip("/")
        self._retry_policy = retry_policy or RetryPolicy()

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    async def post(self, path: str, payload: dict[str, Any], provider_name: str) -> Any:
        """POST *payload* to ``{base_url}{path}`` and return the parsed JSON body.

        Raises
        ------
        ExternalServiceError
            On transport failure or any non-2xx status once retries (for
            429 / 5xx / transport errors) are exhausted.
        course_rag.utils.errors.ParseError
            If the body is not JSON and cannot be repaired.
        """
        url = f"{self._base_url}{path}"

        async def _attempt() -> Any:
            try:
                response = await self._http.post(url, json=payload, headers=self._headers())
            except httpx.HTTPError as exc:
                raise ExternalServiceError(
                    message=f"Transport error calling {path}: {exc}",
                    provider_name=provider_name,
                ) from exc

            if response.status_code >= 400:
                raise ExternalServiceError(
                    message=f"{path} returned HTTP {response.status_code}: {response.text[:200]}",
                    provider_name=provider_name,
                    status_code=response.status_code,
                    retry_after=_retry_after(response),
                )
            return parse_json_response(response.text, provider_name=provider_name)

        return await retry_async(_attempt, policy=self._retry_policy, operation_name=f"jina{path}")

    async def close(self) -> None:
        await self._http.aclose()

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        logger.debug("retry_after_unparseable", value=value)
        return None


def build_jina_client(
    settings: Settings, http_client: httpx.AsyncClient | None = None
) -> JinaAPIClient:
    """Construct a :class:`JinaAPIClient` from application settings."""
    return JinaAPIClient(
        api_key=settings.jina_api_key,
        http_client=http_client,
        base_url=settings.jina_base_url,
        retry_policy=RetryPolicy(
            max_retries=settings.retry_max_retries,
            initial_delay=settings.retry_initial_delay,
            max_delay=settings.retry_max_delay,
        ),
        timeout=settings.http_timeout_seconds,
    )
