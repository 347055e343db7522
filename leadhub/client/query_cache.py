"""
Query Cache - Client-side read-through cache keyed by endpoint.

One instance is shared by everything that reads server state (the balance
monitor, the purchase flow); it is passed in explicitly rather than living
in a module global. Subscribers are told when a key is updated or
invalidated, so derived views can recompute or refetch.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from structlog import get_logger

from leadhub.client.errors import ApiRequestError, ApiTransportError

logger = get_logger(__name__)

CacheKey = tuple[str, ...]

AUTH_ME: CacheKey = ("/api/auth/me",)
CURRENT_SUBSCRIPTION: CacheKey = ("/api/subscriptions/current",)
SUBSCRIPTION_HISTORY: CacheKey = ("/api/subscriptions/history",)


class CacheEvent(str, Enum):
    """What happened to a cache key."""

    UPDATED = "updated"
    INVALIDATED = "invalidated"


@dataclass
class CacheEntry:
    """Cached value for one key."""

    data: Any
    updated_at: float
    stale: bool = False


Listener = Callable[[CacheKey, CacheEvent], None]


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, ApiTransportError):
        return True
    return isinstance(exc, ApiRequestError) and exc.is_server_error


class QueryCache:
    """Key-value store with subscriber notification."""

    def __init__(
        self,
        *,
        fetch_retries: int = 2,
        retry_delay: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.fetch_retries = fetch_retries
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._listeners: dict[CacheKey, list[Listener]] = {}

    def subscribe(self, key: CacheKey, listener: Listener) -> Callable[[], None]:
        """Register a listener for a key; returns the unsubscribe function."""
        self._listeners.setdefault(key, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(key, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def get(self, key: CacheKey) -> Any:
        """Cached data for a key (stale or not), or None."""
        entry = self._entries.get(key)
        return entry.data if entry is not None else None

    def entry(self, key: CacheKey) -> CacheEntry | None:
        return self._entries.get(key)

    def set(self, key: CacheKey, data: Any) -> None:
        self._entries[key] = CacheEntry(data=data, updated_at=time.monotonic())
        self._notify(key, CacheEvent.UPDATED)

    def invalidate(self, *prefixes: CacheKey) -> list[CacheKey]:
        """
        Mark every key starting with one of the prefixes stale.

        Keys with listeners but no data yet are notified as well, so a
        subscriber that has never loaded gets a chance to fetch.
        """
        known = set(self._entries) | {k for k, v in self._listeners.items() if v}
        matched = [
            key for key in known if any(key[: len(prefix)] == prefix for prefix in prefixes)
        ]
        for key in matched:
            entry = self._entries.get(key)
            if entry is not None:
                entry.stale = True
        for key in matched:
            self._notify(key, CacheEvent.INVALIDATED)
        logger.debug("cache_invalidated", keys=[list(k) for k in matched])
        return matched

    async def fetch(
        self,
        key: CacheKey,
        loader: Callable[[], Awaitable[Any]],
        retries: int | None = None,
    ) -> Any:
        """
        Return fresh cached data, or load it.

        Transient failures (transport errors, 5xx) are retried up to
        `retries` times before being re-raised; other errors raise at once.
        """
        entry = self._entries.get(key)
        if entry is not None and not entry.stale:
            return entry.data

        max_retries = self.fetch_retries if retries is None else retries
        attempt = 0
        while True:
            try:
                data = await loader()
            except (ApiTransportError, ApiRequestError) as exc:
                if not _is_transient(exc) or attempt >= max_retries:
                    raise
                attempt += 1
                logger.info("cache_fetch_retry", key=list(key), attempt=attempt, error=str(exc))
                await self._sleep(self.retry_delay * attempt)
                continue

            self.set(key, data)
            return data

    def _notify(self, key: CacheKey, event: CacheEvent) -> None:
        # Copy: listeners may unsubscribe while being notified
        for listener in list(self._listeners.get(key, [])):
            listener(key, event)
