"""
Tests for PoolRegistry dedup.
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pool_registry import PoolRegistry


class TestPoolRegistry:
    """Each pool id is admitted exactly once."""

    def test_first_admit_true(self):
        registry = PoolRegistry()
        assert registry.admit("pool1") is True

    def test_repeats_rejected(self):
        registry = PoolRegistry()
        results = [registry.admit("pool1") for _ in range(50)]
        assert results.count(True) == 1
        assert results[0] is True

    def test_distinct_pools_independent(self):
        registry = PoolRegistry()
        assert registry.admit("pool1")
        assert registry.admit("pool2")
        assert not registry.admit("pool1")
        assert len(registry) == 2

    def test_interleaved_sequence(self):
        registry = PoolRegistry()
        sequence = ["a", "b", "a", "c", "b", "a", "c"]
        admitted = [p for p in sequence if registry.admit(p)]
        assert admitted == ["a", "b", "c"]

    def test_contains_and_first_seen(self):
        registry = PoolRegistry()
        assert "pool1" not in registry
        assert registry.first_seen("pool1") is None
        registry.admit("pool1")
        assert "pool1" in registry
        assert registry.first_seen("pool1") > 0
