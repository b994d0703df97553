"""TTL cache of per-tenant remote tool catalogs."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from centerhub.infra.config import config
from centerhub.infra.metrics import tool_cache_lookups_total
from centerhub.models.tool import ToolDescriptor

logger = logging.getLogger(__name__)


@dataclass
class CachedToolSet:
    tenant_id: str
    tools: List[ToolDescriptor]
    expires_at: float  # clock reading


class ToolDiscoveryCache:
    """
    Per-tenant tool catalog cache.

    Entries are never returned past their expiry. A background sweep started
    on first use inside a running event loop purges expired entries.
    """

    def __init__(
        self,
        default_ttl: float = config.TOOL_CACHE_TTL_SECONDS,
        sweep_interval: float = config.TOOL_CACHE_SWEEP_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize cache.

        Args:
            default_ttl: Seconds an entry stays valid when put() gets no ttl
            sweep_interval: Seconds between background sweeps
            clock: Monotonic clock, injectable for tests
        """
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: Dict[str, CachedToolSet] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def get(self, tenant_id: str) -> Optional[List[ToolDescriptor]]:
        """Return a copy of the cached catalog, or None on miss or expiry."""
        entry = self._entries.get(tenant_id)
        if entry is None:
            tool_cache_lookups_total.labels(result="miss").inc()
            return None

        if self._clock() >= entry.expires_at:
            logger.debug(f"Tool cache expired for {tenant_id}")
            self._entries.pop(tenant_id, None)
            tool_cache_lookups_total.labels(result="miss").inc()
            return None

        tool_cache_lookups_total.labels(result="hit").inc()
        return list(entry.tools)

    def put(self, tenant_id: str, tools: List[ToolDescriptor], ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._entries[tenant_id] = CachedToolSet(
            tenant_id=tenant_id,
            tools=list(tools),
            expires_at=self._clock() + ttl,
        )
        logger.info(f"Cached {len(tools)} tools for {tenant_id} (ttl {ttl}s)")
        self._ensure_sweeper()

    def invalidate(self, tenant_id: str) -> None:
        if self._entries.pop(tenant_id, None) is not None:
            logger.info(f"Tool cache invalidated for {tenant_id}")

    def clear(self) -> None:
        size = len(self._entries)
        self._entries.clear()
        logger.info(f"Tool cache cleared, {size} entries removed")

    def sweep(self) -> int:
        """Remove expired entries. Returns the number removed."""
        now = self._clock()
        expired = [tid for tid, entry in self._entries.items() if now >= entry.expires_at]
        for tenant_id in expired:
            del self._entries[tenant_id]
        if expired:
            logger.debug(f"Tool cache sweep removed {len(expired)} entries")
        return len(expired)

    def stats(self) -> Dict[str, object]:
        now = self._clock()
        valid = sum(1 for entry in self._entries.values() if now < entry.expires_at)
        return {
            "total_entries": len(self._entries),
            "valid_entries": valid,
            "expired_entries": len(self._entries) - valid,
            "tenant_ids": list(self._entries.keys()),
        }

    def _ensure_sweeper(self) -> None:
        if self._sweeper is not None and not self._sweeper.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._sweeper = loop.create_task(self._sweep_loop())

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.sweep()

    async def close(self) -> None:
        """Stop the background sweeper."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
