"""In-memory LRU cache with TTL expiration.

Process-level cache for provider responses. Lives for as long as the worker
does. There is no invalidation, entries leave by expiry or capacity pressure.
"""

import asyncio
from collections import OrderedDict
import logging
import time
from typing import Any, Awaitable, Callable


logger = logging.getLogger(__name__)


DEFAULT_TTL = 60 * 60 * 24
DEFAULT_MAX_SIZE = 100


class LRUCache:
    """TTL-aware LRU cache."""

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl_seconds: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cache: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._max_size = max_size
        self._ttl = ttl_seconds
        self._clock = clock
        # Fetches under way, per key, so concurrent misses share one.
        self.inflight: dict[str, asyncio.Future[Any]] = {}

    def __len__(self) -> int:
        return len(self._cache)

    def get(self, key: str) -> Any | None:
        if key not in self._cache:
            return None
        expires_at, value = self._cache[key]
        if self._clock() >= expires_at:
            del self._cache[key]
            return None
        self._cache.move_to_end(key)
        return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = self._ttl if ttl is None else ttl
        if key in self._cache:
            self._cache.move_to_end(key)
        self._cache[key] = (self._clock() + ttl, value)
        while len(self._cache) > self._max_size:
            self._cache.popitem(last=False)


LRU_CACHE = LRUCache()


async def cachified(
    *,
    key: str,
    cache: LRUCache,
    get_fresh_value: Callable[[], Awaitable[Any]],
    ttl: float | None = None,
    check_value: Callable[[Any], bool] = lambda value: True,
) -> Any:
    """Serve `key` from `cache`, falling back to `get_fresh_value`.

    A cached value rejected by `check_value`, or a cache that fails to read,
    is never served. The fresh value is fetched there and then and replaces it.
    Concurrent misses for the same key wait on the first caller's fetch.
    """
    try:
        cached = cache.get(key)
    except Exception:
        logger.exception("Cache read failed for %s, refetching.", key)
        cached = None

    if cached is not None:
        if check_value(cached):
            logger.debug("Cache hit for %s", key)
            return cached
        logger.warning("Discarding malformed cached value for %s", key)
    else:
        logger.info("Cache miss for %s", key)

    inflight = cache.inflight.get(key)
    if inflight is not None:
        logger.debug("Waiting on in-flight fetch for %s", key)
        return await asyncio.shield(inflight)

    future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
    cache.inflight[key] = future
    try:
        value = await get_fresh_value()
    except asyncio.CancelledError:
        future.cancel()
        raise
    except Exception as e:
        future.set_exception(e)
        # Waiters re-raise it. Marks it retrieved when there are none.
        future.exception()
        raise
    finally:
        cache.inflight.pop(key, None)

    future.set_result(value)
    cache.set(key, value, ttl=ttl)
    return value
