"""Run-scoped memoization of idempotent host API reads.

A single RequestCache is created when a run starts, shared by both host
directories and every repository pipeline, and discarded when the run
ends. There is no TTL: within one run a repository listing or manifest
blob is treated as a snapshot.

Key Features:
    - Keys are the full request signature (base URL + path + sorted query)
    - Concurrent identical requests share one in-flight call
    - Entries are immutable once written; the first writer wins
    - Failures are never cached, so the next caller tries again
    - Hit/miss statistics for the end-of-run log line

Key Exports:
    RequestCache: The cache object.
    build_request_key: Request signature helper.

Example:
    >>> cache = RequestCache()
    >>> key = build_request_key("https://api.github.com", "/orgs/acme/repos", {"page": 1})
    >>> data = await cache.get_or_fetch(key, lambda: fetch_page(1))
"""

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from typing import Any
from urllib.parse import urlencode

import structlog

log = structlog.get_logger(__name__)


def build_request_key(base_url: str, path: str, params: Mapping[str, Any] | None = None) -> str:
    """Build the cache key for a GET request.

    Query parameters are sorted so that the same request built in a
    different order maps to the same entry.

    Example:
        >>> build_request_key("https://gitlab.com/api/v4", "/projects/1/pipelines", {"sha": "abc"})
        'https://gitlab.com/api/v4/projects/1/pipelines?sha=abc'
    """
    key = f"{base_url.rstrip('/')}{path}"
    if params:
        key = f"{key}?{urlencode(sorted((k, str(v)) for k, v in params.items()))}"
    return key


class RequestCache:
    """Memoize awaited results by request signature for one run.

    Attributes:
        _entries: Completed results by key.
        _in_flight: Futures of calls that have not completed yet.
        _hits: Lookups answered from a completed or in-flight entry.
        _misses: Lookups that had to issue the call.
    """

    def __init__(self) -> None:
        self._entries: dict[str, Any] = {}
        self._in_flight: dict[str, asyncio.Future[Any]] = {}
        self._hits = 0
        self._misses = 0

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    async def get_or_fetch(self, key: str, fetch: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached result for ``key``, fetching it at most once.

        Args:
            key: Request signature from build_request_key.
            fetch: Zero-argument coroutine factory performing the request.

        Returns:
            The (possibly shared) result of ``fetch``.

        Raises:
            Whatever ``fetch`` raises. Every caller waiting on the same
            in-flight call receives the same exception, and nothing is stored.
        """
        if key in self._entries:
            self._hits += 1
            log.debug("cache_hit", key=key)
            return self._entries[key]

        pending = self._in_flight.get(key)
        if pending is not None:
            self._hits += 1
            log.debug("cache_join_in_flight", key=key)
            return await asyncio.shield(pending)

        self._misses += 1
        log.debug("cache_miss", key=key)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            result = await fetch()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an unobserved failure does not warn at GC time
            future.exception()
            raise
        else:
            self._entries.setdefault(key, result)
            future.set_result(self._entries[key])
            return self._entries[key]
        finally:
            self._in_flight.pop(key, None)

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dictionary with size, in_flight, hits, misses, hit_rate.
        """
        total = self._hits + self._misses
        return {
            "size": len(self._entries),
            "in_flight": len(self._in_flight),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / total if total else 0.0,
        }

    def clear(self) -> None:
        """Drop every completed entry and reset statistics."""
        count = len(self._entries)
        self._entries.clear()
        self._hits = 0
        self._misses = 0
        log.info("cache_cleared", entries_cleared=count)
