"""Unit tests for cache utilities."""
import threading
import time

from ledger.cache import SimpleTTLCache


class TestSimpleTTLCache:
    """Test the TTL cache wrapper."""

    def test_cache_set_and_get(self):
        cache = SimpleTTLCache[str](ttl=60)

        cache.set("key1", "value1")
        assert cache.get("key1") == "value1"
        assert cache.get("missing") is None

    def test_cache_ttl_expiration(self):
        """Values expire after the TTL."""
        cache = SimpleTTLCache[str](ttl=1)

        cache.set("key1", "value1")
        time.sleep(1.1)

        assert cache.get("key1") is None

    def test_cache_pop_and_clear(self):
        cache = SimpleTTLCache[str](ttl=60)
        cache.set("key1", "value1")
        cache.set("key2", "value2")

        cache.pop("key1")
        cache.pop("never-set")
        assert cache.get("key1") is None
        assert cache.get("key2") == "value2"

        cache.clear()
        assert cache.get("key2") is None

    def test_cache_shared_between_threads(self):
        """Concurrent writers and clears do not corrupt the cache."""
        cache = SimpleTTLCache[int](ttl=60, maxsize=32)

        def churn(offset: int) -> None:
            for i in range(500):
                cache.set(f"k{(offset + i) % 64}", i)
                if i % 50 == 0:
                    cache.clear()

        threads = [threading.Thread(target=churn, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        cache.set("final", 1)
        assert cache.get("final") == 1
