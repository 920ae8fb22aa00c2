"""In-memory result cache with TTL expiry and LRU eviction.

Caches pipeline results so that identical generation requests are served
without calling the model again.

Features:
- TTL-based expiration (1 hour default), checked lazily on read
- Periodic background sweep of expired entries (every 5 minutes)
- LRU eviction when the cache is at capacity (100 entries default)
- Request hashing on normalized instruction and file identity

Note:
    The cache lives in process memory. Horizontally scaled deployments get
    one independent cache per process; share a distributed implementation of
    ``ResultCacheProtocol`` if consistency across instances matters.

Example:
    >>> cache = ResultCache()
    >>> key = hash_request(request)
    >>> cached = cache.get(key)
    >>> if cached is None:
    ...     result = await controller.run(request)
    ...     cache.set(key, result)
"""

import asyncio
import hashlib
import json
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache

from diagrammer.config import EnvVar, get_environment
from diagrammer.models import GenerationRequest, PipelineResult

logger = logging.getLogger(__name__)

DEFAULT_TTL = 60 * 60
DEFAULT_MAX_SIZE = 100
DEFAULT_SWEEP_INTERVAL = 5 * 60


def _normalize_instruction(text: str) -> str:
    return " ".join(text.split()).lower()


def hash_request(request: GenerationRequest) -> str:
    """Build the cache key for a request.

    The key covers the normalized instruction (trimmed, lowercased, inner
    whitespace collapsed), the number of conversation turns and the sorted
    set of reference-file names and sizes. File content is never read.

    Args:
        request: Request to key.

    Returns:
        Hex SHA-256 digest of the canonical key document.
    """
    normalized = {
        "request": _normalize_instruction(request.instruction),
        "history_length": len(request.conversation_history),
        "files": sorted({(f.name, f.size) for f in request.files}),
    }
    canonical = json.dumps(normalized, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass
class CacheEntry:
    """A cached value with its lifetime bookkeeping."""

    value: PipelineResult
    expires_at: float
    last_accessed: float


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time cache statistics.

    Attributes:
        size: Number of entries currently held.
        max_size: Capacity before LRU eviction.
        oldest_access: Earliest last-access time among entries.
        newest_access: Latest last-access time among entries.
    """

    size: int
    max_size: int
    oldest_access: float | None
    newest_access: float | None


class ResultCache:
    """TTL + LRU cache of pipeline results.

    ``get`` is a side-effecting read: a hit refreshes the entry's access time
    and moves it to the most-recently-used position, and an expired hit
    deletes the entry.

    The background sweep runs as an asyncio task. It starts on the first
    ``set`` made inside a running event loop and stops on ``close()``;
    without a loop the cache relies on lazy expiry alone.

    Attributes:
        max_size: Maximum number of entries.
        default_ttl: Lifetime in seconds applied when ``set`` gets no ttl.
        sweep_interval: Seconds between background sweeps.
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        default_ttl: float = DEFAULT_TTL,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            max_size: Maximum number of entries (at least 1).
            default_ttl: Default entry lifetime in seconds.
            sweep_interval: Seconds between background sweeps.
            clock: Time source returning seconds.
        """
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._sweeper: asyncio.Task | None = None

    @classmethod
    def from_environment(cls) -> "ResultCache":
        """Create a cache sized from environment configuration."""
        return cls(
            max_size=get_environment(EnvVar.CACHE_MAX_SIZE),
            default_ttl=get_environment(EnvVar.CACHE_TTL_SECONDS),
            sweep_interval=get_environment(EnvVar.CACHE_SWEEP_SECONDS),
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    # =========================================================================
    # Cache Operations
    # =========================================================================

    def get(self, key: str) -> PipelineResult | None:
        """Get a cached value.

        Args:
            key: Cache key.

        Returns:
            The stored value, or None if absent or expired.
        """
        entry = self._entries.get(key)
        if entry is None:
            logger.debug(f"Cache miss: {key[:16]}")
            return None

        now = self._clock()
        if now > entry.expires_at:
            del self._entries[key]
            logger.debug(f"Cache miss (expired): {key[:16]}")
            return None

        entry.last_accessed = now
        self._entries.move_to_end(key)
        logger.debug(f"Cache hit: {key[:16]}")
        return entry.value

    def set(self, key: str, value: PipelineResult, ttl: float | None = None) -> None:
        """Store a value, evicting the least recently used entry if full.

        Eviction only happens for new keys; overwriting an existing key
        never evicts another entry.

        Args:
            key: Cache key.
            value: Result to store.
            ttl: Lifetime in seconds. Defaults to ``default_ttl``.
        """
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_lru()

        now = self._clock()
        lifetime = self.default_ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(
            value=value,
            expires_at=now + lifetime,
            last_accessed=now,
        )
        self._entries.move_to_end(key)
        logger.debug(
            f"Cached result (size: {len(self._entries)}/{self.max_size}): {key[:16]}"
        )
        self._ensure_sweeper()

    def invalidate(self, key: str) -> bool:
        """Remove a key.

        Returns:
            True if the key was present.
        """
        entry = self._entries.pop(key, None)
        if entry is not None:
            logger.debug(f"Invalidated: {key[:16]}")
        return entry is not None

    def clear(self) -> None:
        """Remove every entry."""
        size = len(self._entries)
        self._entries.clear()
        logger.info(f"Cleared {size} cached results")

    def get_stats(self) -> CacheStats:
        """Get cache size and access-time extremes."""
        accesses = [entry.last_accessed for entry in self._entries.values()]
        return CacheStats(
            size=len(self._entries),
            max_size=self.max_size,
            oldest_access=min(accesses) if accesses else None,
            newest_access=max(accesses) if accesses else None,
        )

    def sweep(self) -> int:
        """Remove all expired entries.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info(f"Removed {len(expired)} expired cached results")
        return len(expired)

    def _evict_lru(self) -> None:
        key, _ = self._entries.popitem(last=False)
        logger.debug(f"Evicted LRU entry: {key[:16]}")

    # =========================================================================
    # Background Sweep
    # =========================================================================

    def _ensure_sweeper(self) -> None:
        if self._sweeper is not None and not self._sweeper.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._sweeper = loop.create_task(self._sweep_loop(), name="result-cache-sweep")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.sweep()

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def start(self) -> None:
        """Start the background sweep. Requires a running event loop."""
        asyncio.get_running_loop()
        self._ensure_sweeper()

    def stop(self) -> None:
        """Cancel the background sweep without waiting for it to finish."""
        sweeper, self._sweeper = self._sweeper, None
        if sweeper is None or sweeper.done() or sweeper.get_loop().is_closed():
            return
        sweeper.cancel()

    async def close(self) -> None:
        """Stop the background sweep."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    async def __aenter__(self) -> "ResultCache":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


@lru_cache(maxsize=1)
def get_default_cache() -> ResultCache:
    """Get the process-wide cache instance.

    Note:
        The instance persists for the lifetime of the process. Pass an
        explicit cache to the controller to isolate callers.
    """
    return ResultCache.from_environment()


def reset_default_cache() -> None:
    """Drop the process-wide cache instance (mainly for tests).

    The dropped instance's background sweep is cancelled.
    """
    if get_default_cache.cache_info().currsize:
        get_default_cache().stop()
    get_default_cache.cache_clear()


__all__ = [
    "CacheEntry",
    "CacheStats",
    "ResultCache",
    "get_default_cache",
    "hash_request",
    "reset_default_cache",
]
