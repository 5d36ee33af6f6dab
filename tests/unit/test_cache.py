"""Unit tests for CalculationCache."""

import math

import pytest

from dosecalc.cache.calculation_cache import CalculationCache
from dosecalc.core.exceptions import ConfigurationError


class TestCalculationCache:
    """Tests for CalculationCache class."""

    def test_initialization(self):
        """Test an empty cache."""
        cache = CalculationCache(max_size=10)
        assert len(cache) == 0
        assert cache.max_size == 10

    def test_invalid_size(self):
        """Test a non-positive bound is a configuration error."""
        with pytest.raises(ConfigurationError, match="formula_cache_max_size"):
            CalculationCache(max_size=0)

    def test_key_deterministic(self):
        """Test equal inputs give equal keys regardless of key order."""
        cache = CalculationCache(max_size=10)
        first = cache.generate_cache_key("a + b", {"a": 1, "b": {"x": 1, "y": 2}})
        second = cache.generate_cache_key("a + b", {"b": {"y": 2, "x": 1}, "a": 1})
        assert first == second
        assert first.startswith("calc:")

    def test_key_changes_with_inputs(self):
        """Test formula text and every context value feed the key."""
        cache = CalculationCache(max_size=10)
        base = cache.generate_cache_key("a * 2", {"a": 1})
        assert cache.generate_cache_key("a * 3", {"a": 1}) != base
        assert cache.generate_cache_key("a * 2", {"a": 2}) != base
        assert cache.generate_cache_key("a * 2", {"a": 1, "b": 0}) != base

    def test_key_none_context(self):
        """Test a missing context keys like an empty one."""
        cache = CalculationCache(max_size=10)
        assert cache.generate_cache_key("1", None) == cache.generate_cache_key("1", {})

    def test_key_distinguishes_non_finite(self):
        """Test NaN and the infinities give distinct keys."""
        cache = CalculationCache(max_size=10)
        keys = {
            cache.generate_cache_key("x", {"x": value})
            for value in (math.nan, math.inf, -math.inf, None)
        }
        assert len(keys) == 4

    def test_key_non_finite_nested(self):
        """Test non-finite floats inside lists and nested mappings are told apart."""
        cache = CalculationCache(max_size=10)
        first = cache.generate_cache_key("x", {"x": {"v": [1.0, math.inf]}})
        second = cache.generate_cache_key("x", {"x": {"v": [1.0, math.nan]}})
        assert first != second

    def test_unserializable_context(self):
        """Test contexts orjson cannot encode are uncacheable."""
        cache = CalculationCache(max_size=10)
        assert cache.generate_cache_key("a", {"a": object()}) is None

    def test_get_set(self):
        """Test storing and retrieving."""
        cache = CalculationCache(max_size=10)
        assert cache.get("k") is None
        cache.set("k", "result")
        assert cache.get("k") == "result"
        assert len(cache) == 1

    def test_eviction_oldest_first(self):
        """Test the oldest entry is evicted when full."""
        cache = CalculationCache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        assert cache.get("a") is None
        assert len(cache) == 2
        assert cache.stats().evictions == 1

    def test_overwrite_does_not_evict(self):
        """Test replacing an entry keeps the size."""
        cache = CalculationCache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 3)
        assert cache.get("a") == 3
        assert cache.get("b") == 2

    def test_clear(self):
        """Test clearing keeps the statistics."""
        cache = CalculationCache(max_size=10)
        cache.set("a", 1)
        cache.get("a")
        cache.clear()
        assert len(cache) == 0
        assert cache.stats().hits == 1

    def test_hit_miss_logging(self, caplog):
        """Test hits and misses are logged at debug level."""
        cache = CalculationCache(max_size=10)
        with caplog.at_level("DEBUG", logger="dosecalc.cache.calculation_cache"):
            cache.get("k")
            cache.set("k", 1)
            cache.get("k")
        assert "Cache miss: k" in caplog.text
        assert "Cache hit: k" in caplog.text

    def test_stats_empty(self):
        """Test the hit rate of an unused cache."""
        assert CalculationCache(max_size=1).stats().hit_rate == 0.0
