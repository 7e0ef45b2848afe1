import asyncio
import logging
import sys
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional, Tuple

from cachetools import TTLCache

log = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024


@dataclass(frozen=True)
class CachedResponse:
    """A fully-rendered response, detached from any request."""
    status_code: int
    body: bytes
    media_type: str
    headers: Dict[str, str] = field(default_factory=dict)
    timestamp: float = 0.0


def _response_weight(response: CachedResponse) -> int:
    # Rough estimate of the entry size in bytes; cachetools passes only the value
    return max(sys.getsizeof(response) + len(response.body), 1)


class ResponseCache:
    """
    In-memory response cache bounded by TTL and total size.

    Responses are cached no matter their status: upstream failures are most
    likely permanent for a given URL until the TTL runs out.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_size_mb: int,
        timer: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            ttl_seconds: How long an entry stays valid.
            max_size_mb: Total capacity in megabytes. 0 disables storing.
            timer: Monotonic clock, injectable for tests.
        """
        self.ttl_seconds = ttl_seconds
        self.max_size_mb = max_size_mb
        self.timer = timer
        self._cache: TTLCache = TTLCache(
            maxsize=max(max_size_mb * BYTES_PER_MB, 1),
            ttl=ttl_seconds,
            timer=timer,
            getsizeof=_response_weight,
        )
        self._locks: Dict[str, asyncio.Lock] = {}
        # Requests holding or queued on each key lock
        self._lock_users: Dict[str, int] = {}
        log.info(f"ResponseCache initialized (ttl={ttl_seconds}s, max_size={max_size_mb}mb)")

    def get(self, key: str) -> Optional[CachedResponse]:
        return self._cache.get(key)

    def put(self, key: str, response: CachedResponse) -> None:
        if self.max_size_mb == 0:
            return
        try:
            self._cache[key] = response
        except ValueError:
            # cachetools refuses values larger than the whole cache
            log.warning(f"Response for '{key}' ({len(response.body)} bytes) exceeds cache capacity, not caching.")

    def age_of(self, response: CachedResponse) -> int:
        """Whole seconds since the response was stored."""
        return int(self.timer() - response.timestamp)

    async def get_or_compute(
        self, key: str, factory: Callable[[], Awaitable[CachedResponse]]
    ) -> Tuple[CachedResponse, bool]:
        """
        Returns the cached response for `key`, computing and storing it on a miss.

        Concurrent misses for the same key wait for a single computation.

        Args:
            key: The cache key (request path and query).
            factory: Coroutine function producing the response on a miss.

        Returns:
            A tuple (response, hit). `hit` is True when served from the cache.
        """
        cached = self.get(key)
        if cached is not None:
            log.debug(f"Cache hit for '{key}'")
            return cached, True

        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                cached = self.get(key)
                if cached is not None:
                    log.debug(f"Cache hit for '{key}' after waiting on in-flight request")
                    return cached, True

                response = await factory()
                stored = CachedResponse(
                    status_code=response.status_code,
                    body=response.body,
                    media_type=response.media_type,
                    headers=dict(response.headers),
                    timestamp=self.timer(),
                )
                self.put(key, stored)
                log.debug(f"Cache miss for '{key}', stored response with status {stored.status_code}")
                return stored, False
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._lock_users[key]
                del self._locks[key]
