"""Query cache for backend reads.

Reads are cached per key tuple, e.g. ``("machines",)`` or ``("machine", id)``,
and retried on transient failures. Mutations never pass through here; after a
mutation the caller invalidates the affected keys so the next read refetches.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from wartungsteile import config
from wartungsteile.errors import ApiError

logger = logging.getLogger(__name__)

QueryKey = Tuple[Any, ...]
Loader = Callable[[], Awaitable[Any]]

MACHINES = ("machines",)
PARTS = ("parts",)
USERS = ("users",)
BACKUPS = ("backups",)


@dataclass
class CacheEntry:
    value: Any
    fetched_at: float


def should_retry(ex: BaseException, attempt: int, max_retries: int) -> bool:
    """Retry policy for reads.

    Client errors (4xx) are final. Server errors and network failures are
    retried until ``max_retries`` retries have been spent.

    >>> from wartungsteile.errors import NotFoundError, ServerError
    >>> should_retry(NotFoundError("x", 404), 0, 2)
    False
    >>> should_retry(ServerError("x", 500), 1, 2)
    True
    >>> should_retry(ServerError("x", 500), 2, 2)
    False
    """
    if attempt >= max_retries:
        return False
    if not isinstance(ex, ApiError):
        return False
    return not ex.is_client_error


class QueryCache:
    """Keyed read cache with stale time, retries and prefix invalidation.

    Parameters
    ----------
    stale_seconds:
        Age after which an entry is refetched on the next :meth:`fetch`.
    max_retries:
        Retries after the first failed attempt of a read.
    retry_base_delay:
        Backoff before retry ``n`` is ``retry_base_delay * 2**n`` seconds.
    sleep, clock:
        Injectable for tests.
    """

    def __init__(
        self,
        stale_seconds: float = config.QUERY_STALE_SECONDS,
        max_retries: int = config.READ_RETRIES,
        retry_base_delay: float = config.RETRY_BASE_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.stale_seconds = stale_seconds
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self._sleep = sleep
        self._clock = clock
        self._entries: Dict[QueryKey, CacheEntry] = {}
        self._listeners: List[Callable[[QueryKey], None]] = []
        self.invalidations: List[QueryKey] = []

    def get(self, key: QueryKey) -> Any:
        entry = self._entries.get(key)
        return entry.value if entry is not None else None

    def set(self, key: QueryKey, value: Any) -> None:
        self._entries[key] = CacheEntry(value, self._clock())

    def is_fresh(self, key: QueryKey) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        return self._clock() - entry.fetched_at < self.stale_seconds

    async def fetch(self, key: QueryKey, loader: Loader, force: bool = False) -> Any:
        """Return the cached value for ``key`` or load it with retries."""
        if not force and self.is_fresh(key):
            return self._entries[key].value

        attempt = 0
        while True:
            try:
                value = await loader()
            except ApiError as ex:
                if not should_retry(ex, attempt, self.max_retries):
                    raise
                delay = self.retry_base_delay * (2 ** attempt)
                logger.warning("Read %r failed (%s), retry %d in %.1fs", key, ex, attempt + 1, delay)
                attempt += 1
                await self._sleep(delay)
                continue
            self.set(key, value)
            return value

    def invalidate(self, prefix: QueryKey) -> None:
        """Drop every key starting with ``prefix`` and notify listeners."""
        n = len(prefix)
        for key in [k for k in self._entries if k[:n] == prefix]:
            del self._entries[key]
        self.invalidations.append(prefix)
        logger.debug("Invalidated %r", prefix)
        for listener in list(self._listeners):
            listener(prefix)

    def on_invalidate(self, listener: Callable[[QueryKey], None]) -> None:
        self._listeners.append(listener)

    def clear(self) -> None:
        self._entries.clear()
