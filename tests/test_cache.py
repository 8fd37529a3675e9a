"""
Tests for the TTL cache.
"""

from capacity_engine.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestTTLCache:
    """Tests for expiry and invalidation."""

    def test_get_fresh_value(self):
        """Test a value is returned before its TTL."""
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("a", 1)
        clock.now = 9.9
        assert cache.get("a") == 1
        assert "a" in cache

    def test_value_expires(self):
        """Test a value disappears once the TTL has elapsed."""
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("a", 1)
        clock.now = 10
        assert cache.get("a") is None
        assert cache.get("a", "missing") == "missing"
        assert len(cache) == 0

    def test_last_write_wins(self):
        """Test overwriting a key resets its value and age."""
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("a", 1)
        clock.now = 8
        cache.set("a", 2)
        clock.now = 15
        assert cache.get("a") == 2

    def test_invalidate(self):
        """Test dropping one key and then all keys."""
        cache = TTLCache(ttl_seconds=60)
        cache.set(("team", 1), "x")
        cache.set(("team", 2), "y")

        cache.invalidate(("team", 1))
        assert ("team", 1) not in cache
        assert ("team", 2) in cache

        cache.invalidate()
        assert len(cache) == 0

    def test_falsy_values_are_cached(self):
        """Test that empty results still count as hits."""
        cache = TTLCache(ttl_seconds=60)
        cache.set("empty", [])
        assert "empty" in cache
        assert cache.get("empty") == []
