"""Tests for the result cache.

Covers:
- hash_request: key stability and sensitivity
- ResultCache: TTL expiry, LRU eviction, invalidation, stats
- Background sweep lifecycle
"""

import asyncio

import pytest

from diagrammer.models import GenerationRequest, PipelineMetadata, PipelineResult

from .lib import ResultCache, get_default_cache, hash_request, reset_default_cache
from .protocol import ResultCacheProtocol


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _result(name: str) -> PipelineResult:
    return PipelineResult(
        success=True,
        artifact=f"<html><body>{name}</body></html>",
        metadata=PipelineMetadata(model="mock", iterations=1, validation_passed=True),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> ResultCache:
    return ResultCache(max_size=3, default_ttl=60, clock=clock)


# =============================================================================
# hash_request
# =============================================================================


class TestHashRequest:
    """Tests for cache key derivation."""

    @pytest.mark.unit
    def test_whitespace_and_case_insensitive(self):
        """Instruction whitespace and case do not change the key."""
        a = GenerationRequest(instruction="Draw 3 boxes")
        b = GenerationRequest(instruction="  draw   3\tBOXES \n")
        assert hash_request(a) == hash_request(b)

    @pytest.mark.unit
    def test_file_order_irrelevant(self):
        """Files are keyed as a sorted set of name and size."""
        files = [
            {"name": "a.txt", "size": 10, "content": "alpha"},
            {"name": "b.txt", "size": 20, "content": "beta"},
        ]
        a = GenerationRequest(instruction="chart", files=files)
        b = GenerationRequest(instruction="chart", files=list(reversed(files)))
        assert hash_request(a) == hash_request(b)

    @pytest.mark.unit
    def test_file_content_ignored(self):
        """Only file identity participates in the key."""
        a = GenerationRequest(
            instruction="chart", files=[{"name": "a.txt", "size": 10, "content": "x"}]
        )
        b = GenerationRequest(
            instruction="chart", files=[{"name": "a.txt", "size": 10, "content": "y"}]
        )
        assert hash_request(a) == hash_request(b)

    @pytest.mark.unit
    def test_file_size_matters(self):
        """Different sizes produce different keys."""
        a = GenerationRequest(instruction="chart", files=[{"name": "a.txt", "size": 10}])
        b = GenerationRequest(instruction="chart", files=[{"name": "a.txt", "size": 11}])
        assert hash_request(a) != hash_request(b)

    @pytest.mark.unit
    def test_history_length_matters(self):
        """Conversation length is part of the key."""
        a = GenerationRequest(instruction="chart")
        b = GenerationRequest(
            instruction="chart",
            conversation_history=[{"role": "user", "content": "earlier"}],
        )
        assert hash_request(a) != hash_request(b)

    @pytest.mark.unit
    def test_different_instructions(self):
        """Different instructions produce different keys."""
        a = GenerationRequest(instruction="draw 3 boxes")
        b = GenerationRequest(instruction="draw 4 boxes")
        assert hash_request(a) != hash_request(b)


# =============================================================================
# ResultCache
# =============================================================================


class TestResultCache:
    """Tests for get/set/invalidate/clear semantics."""

    @pytest.mark.unit
    def test_satisfies_protocol(self, cache):
        """ResultCache implements the cache protocol."""
        protocol_cache: ResultCacheProtocol = cache
        assert protocol_cache.get("missing") is None

    @pytest.mark.unit
    def test_get_after_set_returns_same_value(self, cache):
        """A value read within its TTL is the exact stored object."""
        value = _result("a")
        cache.set("a", value)
        assert cache.get("a") is value

    @pytest.mark.unit
    def test_expired_entry_removed_on_read(self, cache, clock):
        """Reading after TTL returns None and drops the entry."""
        cache.set("a", _result("a"))
        clock.advance(61)
        assert cache.get("a") is None
        assert cache.get_stats().size == 0

    @pytest.mark.unit
    def test_entry_valid_at_exact_expiry(self, cache, clock):
        """Expiry is strict: now must exceed expires_at."""
        cache.set("a", _result("a"))
        clock.advance(60)
        assert cache.get("a") is not None

    @pytest.mark.unit
    def test_custom_ttl(self, cache, clock):
        """Per-call TTL overrides the default."""
        cache.set("short", _result("s"), ttl=5)
        cache.set("long", _result("l"))
        clock.advance(10)
        assert cache.get("short") is None
        assert cache.get("long") is not None

    @pytest.mark.unit
    def test_evicts_least_recently_used(self, cache, clock):
        """Inserting max_size + 1 keys evicts the oldest one."""
        for key in ("a", "b", "c"):
            cache.set(key, _result(key))
            clock.advance(1)
        cache.set("d", _result("d"))
        assert "a" not in cache
        assert all(key in cache for key in ("b", "c", "d"))
        assert len(cache) == 3

    @pytest.mark.unit
    def test_get_protects_from_eviction(self, cache, clock):
        """A read makes an entry most recently used."""
        for key in ("a", "b", "c"):
            cache.set(key, _result(key))
            clock.advance(1)
        assert cache.get("a") is not None
        cache.set("d", _result("d"))
        assert "a" in cache
        assert "b" not in cache

    @pytest.mark.unit
    def test_lru_order_without_clock_movement(self, cache):
        """Recency order holds even when timestamps tie."""
        for key in ("a", "b", "c"):
            cache.set(key, _result(key))
        cache.get("a")
        cache.set("d", _result("d"))
        assert "b" not in cache
        assert "a" in cache

    @pytest.mark.unit
    def test_update_never_evicts(self, cache):
        """Overwriting an existing key at capacity keeps all entries."""
        for key in ("a", "b", "c"):
            cache.set(key, _result(key))
        replacement = _result("a2")
        cache.set("a", replacement)
        assert len(cache) == 3
        assert cache.get("a") is replacement

    @pytest.mark.unit
    def test_invalidate(self, cache):
        """Invalidate reports whether the key existed."""
        cache.set("a", _result("a"))
        assert cache.invalidate("a") is True
        assert cache.invalidate("a") is False
        assert cache.get("a") is None

    @pytest.mark.unit
    def test_clear(self, cache):
        """Clear empties the cache."""
        cache.set("a", _result("a"))
        cache.set("b", _result("b"))
        cache.clear()
        assert cache.get_stats().size == 0

    @pytest.mark.unit
    def test_stats(self, cache, clock):
        """Stats report size, capacity and access extremes."""
        assert cache.get_stats().oldest_access is None
        cache.set("a", _result("a"))
        clock.advance(5)
        cache.set("b", _result("b"))
        clock.advance(5)
        cache.get("a")
        stats = cache.get_stats()
        assert stats.size == 2
        assert stats.max_size == 3
        assert stats.oldest_access == 1005.0
        assert stats.newest_access == 1010.0

    @pytest.mark.unit
    def test_sweep_removes_only_expired(self, cache, clock):
        """Sweep drops expired entries regardless of access."""
        cache.set("old", _result("old"), ttl=10)
        cache.set("new", _result("new"), ttl=100)
        clock.advance(20)
        assert cache.sweep() == 1
        assert "old" not in cache
        assert "new" in cache

    @pytest.mark.unit
    def test_invalid_capacity(self):
        """Capacity must be positive."""
        with pytest.raises(ValueError, match="max_size"):
            ResultCache(max_size=0)

    @pytest.mark.unit
    def test_from_environment(self, monkeypatch):
        """Sizing is read from the environment."""
        monkeypatch.setenv("CACHE_MAX_SIZE", "7")
        monkeypatch.setenv("CACHE_TTL_SECONDS", "30")
        cache = ResultCache.from_environment()
        assert cache.max_size == 7
        assert cache.default_ttl == 30

    @pytest.mark.unit
    def test_default_cache_is_shared(self):
        """The process-wide cache is a single instance."""
        reset_default_cache()
        try:
            assert get_default_cache() is get_default_cache()
        finally:
            reset_default_cache()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_reset_cancels_sweeper(self):
        """Dropping the process-wide cache stops its background sweep."""
        cache = get_default_cache()
        cache.start()
        assert cache.sweeper_running

        reset_default_cache()
        await asyncio.sleep(0)

        assert cache.sweeper_running is False
        assert get_default_cache() is not cache
        running = {task.get_name() for task in asyncio.all_tasks()}
        assert "result-cache-sweep" not in running


class TestSweeper:
    """Tests for the background sweep task."""

    @pytest.mark.unit
    def test_no_sweeper_without_loop(self, cache):
        """Synchronous use does not start a task."""
        cache.set("a", _result("a"))
        assert cache.sweeper_running is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_sweeper_removes_expired_entries(self, clock):
        """The periodic sweep evicts expired entries without reads."""
        cache = ResultCache(max_size=10, default_ttl=1, sweep_interval=0.01, clock=clock)
        async with cache:
            cache.set("a", _result("a"))
            assert cache.sweeper_running
            clock.advance(5)
            for _ in range(50):
                if len(cache) == 0:
                    break
                await asyncio.sleep(0.01)
            assert len(cache) == 0
        assert cache.sweeper_running is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_set_starts_sweeper_lazily(self, cache):
        """The first set inside a loop starts the sweep."""
        cache.set("a", _result("a"))
        assert cache.sweeper_running
        await cache.close()
        assert cache.sweeper_running is False
