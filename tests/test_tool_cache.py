"""Unit tests for the tool discovery cache."""

import asyncio

import pytest

from centerhub.models.tool import ToolDescriptor, ToolOrigin
from centerhub.services.tool_cache import ToolDiscoveryCache


def _tool(name: str) -> ToolDescriptor:
    return ToolDescriptor(name=name, description=f"{name} tool", origin=ToolOrigin.REMOTE)


class TestToolDiscoveryCache:
    """Test TTL semantics and housekeeping."""

    @pytest.fixture
    def cache(self, fake_clock):
        return ToolDiscoveryCache(default_ttl=300, sweep_interval=60, clock=fake_clock)

    def test_get_within_ttl(self, cache, fake_clock):
        """Entries are returned until they expire."""
        cache.put("cucuta", [_tool("check_inventory")])
        fake_clock.advance(299)

        tools = cache.get("cucuta")

        assert [t.name for t in tools] == ["check_inventory"]

    def test_never_returned_past_expiry(self, cache, fake_clock):
        """An entry at or past its expiry is a miss and is removed."""
        cache.put("cucuta", [_tool("check_inventory")])
        fake_clock.advance(300)

        assert cache.get("cucuta") is None
        assert cache.stats()["total_entries"] == 0

    def test_returns_copies(self, cache):
        """Mutating a returned list does not affect the cached entry."""
        cache.put("cucuta", [_tool("a")])

        cache.get("cucuta").append(_tool("b"))

        assert len(cache.get("cucuta")) == 1

    def test_custom_ttl(self, cache, fake_clock):
        cache.put("cucuta", [_tool("a")], ttl=10)
        fake_clock.advance(11)

        assert cache.get("cucuta") is None

    def test_invalidate_and_clear(self, cache):
        cache.put("cucuta", [_tool("a")])
        cache.put("bogota", [_tool("b")])

        cache.invalidate("cucuta")
        assert cache.get("cucuta") is None
        assert cache.get("bogota") is not None

        cache.clear()
        assert cache.stats()["total_entries"] == 0

    def test_sweep_removes_expired_only(self, cache, fake_clock):
        """Sweep purges expired entries without any access."""
        cache.put("old", [_tool("a")], ttl=30)
        cache.put("fresh", [_tool("b")], ttl=300)
        fake_clock.advance(60)

        stats = cache.stats()
        assert stats["expired_entries"] == 1
        assert stats["valid_entries"] == 1

        removed = cache.sweep()

        assert removed == 1
        assert cache.stats()["tenant_ids"] == ["fresh"]

    @pytest.mark.asyncio
    async def test_background_sweeper(self, fake_clock):
        """The background task purges expired entries on its interval."""
        cache = ToolDiscoveryCache(default_ttl=5, sweep_interval=0.01, clock=fake_clock)
        try:
            cache.put("cucuta", [_tool("a")])
            fake_clock.advance(10)

            await asyncio.sleep(0.05)

            assert cache.stats()["total_entries"] == 0
        finally:
            await cache.close()
