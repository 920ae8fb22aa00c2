"""Cache protocol for pipeline results.

Defines the interface the feedback loop controller depends on, so that the
in-process ResultCache can be swapped for a shared implementation.
"""

from typing import Protocol

from diagrammer.models import PipelineResult

from .lib import CacheStats


class ResultCacheProtocol(Protocol):
    """Protocol defining the result cache interface.

    ``get`` is not a pure accessor: implementations refresh recency on a hit
    and drop expired entries.
    """

    def get(self, key: str) -> PipelineResult | None:
        """Get a cached result, or None if absent or expired."""
        ...

    def set(self, key: str, value: PipelineResult, ttl: float | None = None) -> None:
        """Store a result for ``ttl`` seconds (implementation default if None)."""
        ...

    def invalidate(self, key: str) -> bool:
        """Remove a key. Returns True if it was present."""
        ...

    def clear(self) -> None:
        """Remove every entry."""
        ...

    def get_stats(self) -> CacheStats:
        """Get size, capacity and access-time extremes."""
        ...
