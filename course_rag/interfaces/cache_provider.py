"""Abstract base class for cache service providers.

Defines the key-value contract behind the retrieval result cache and the
vector-index search cache.  The in-memory TTL implementation is the only
one shipped; a Redis adapter could implement the same contract for
multi-process deployments.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class ICacheProvider(ABC):
    """Contract for key-value cache services.

    All operations are async to allow for network-backed stores without
    blocking the event loop.  Implementations must be safe for concurrent
    use by many in-flight requests.
    """

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Retrieve the value stored under *key*.

        Returns
        -------
        Any or None
            The cached value if present and not expired; ``None`` otherwise.
        """

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store *value* under *key* with the provider's configured TTL."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove the entry stored under *key* (no-op if absent)."""

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        """Remove every entry whose key starts with *prefix*.

        Returns
        -------
        int
            The number of entries removed.
        """

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Return ``True`` if *key* is present in the cache and not expired."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every entry unconditionally."""

    @abstractmethod
    def size(self) -> int:
        """Return the number of live entries."""
