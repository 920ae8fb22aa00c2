"""Result cache for generation requests.

Provides a TTL + LRU in-memory cache keyed by a normalized request hash,
plus the protocol that alternative cache backends implement.
"""

from .lib import (
    CacheEntry,
    CacheStats,
    ResultCache,
    get_default_cache,
    hash_request,
    reset_default_cache,
)
from .protocol import ResultCacheProtocol

__all__ = [
    "CacheEntry",
    "CacheStats",
    "ResultCache",
    "ResultCacheProtocol",
    "get_default_cache",
    "hash_request",
    "reset_default_cache",
]
