"""Tenant resolution and per-tenant storage handle provisioning."""

import asyncio
import logging
import threading
from typing import Dict, Optional

from centerhub.infra.database import StorageHandle
from centerhub.infra.error_handler import TenantNotFoundError
from centerhub.infra.timeout import STORAGE_HEALTH_TIMEOUT
from centerhub.models.tenant import RoutingSignals, TenantProfile, TenantStatus

logger = logging.getLogger(__name__)


class TenantRouter:
    """
    Resolves inbound requests to tenant profiles.

    Storage handles are created on first use and reused for the process lifetime.
    """

    def __init__(
        self,
        profiles: Dict[str, TenantProfile],
        default_tenant_id: str,
        connection_manager=None,
    ):
        """
        Args:
            profiles: tenant_id -> TenantProfile
            default_tenant_id: Tenant used when no signal resolves to a known one
            connection_manager: MCPConnectionManager used to probe remote endpoints
        """
        if default_tenant_id not in profiles:
            raise TenantNotFoundError(default_tenant_id)
        self.profiles = profiles
        self.default_tenant_id = default_tenant_id
        self.connection_manager = connection_manager
        self._handles: Dict[str, StorageHandle] = {}
        self._handles_lock = threading.Lock()

    @property
    def default_profile(self) -> TenantProfile:
        return self.profiles[self.default_tenant_id]

    def get_profile(self, tenant_id: str) -> TenantProfile:
        """
        Raises:
            TenantNotFoundError: If the tenant has no profile
        """
        profile = self.profiles.get(tenant_id)
        if profile is None:
            raise TenantNotFoundError(tenant_id)
        return profile

    def resolve_tenant(self, signals: RoutingSignals) -> TenantProfile:
        """
        Resolve the tenant of a request.

        Precedence: explicit tenant id, identity-derived tenant, geolocation,
        query parameter, configured default. An unknown resolved id falls back
        to the default tenant and is logged, never raised.
        """
        tenant_id = (
            signals.tenant_id
            or signals.identity_tenant_id
            or self._identify_by_geolocation(signals.client_ip)
            or signals.query_tenant_id
        )
        if not tenant_id:
            logger.debug(f"No routing signal, using default tenant {self.default_tenant_id}")
            return self.default_profile

        try:
            return self.get_profile(tenant_id)
        except TenantNotFoundError as e:
            logger.warning(f"{e.message}, using default tenant {self.default_tenant_id}")
            return self.default_profile

    def _identify_by_geolocation(self, client_ip: Optional[str]) -> Optional[str]:
        # Reserved: no geolocation provider is wired in
        return None

    def get_storage_handle(self, tenant_id: str) -> StorageHandle:
        """Get the tenant's storage handle, creating it exactly once."""
        handle = self._handles.get(tenant_id)
        if handle is not None:
            return handle

        profile = self.get_profile(tenant_id)
        with self._handles_lock:
            handle = self._handles.get(tenant_id)
            if handle is None:
                handle = StorageHandle(tenant_id, profile.storage_url)
                self._handles[tenant_id] = handle
                logger.info(f"Storage handle created for tenant {tenant_id}")
        return handle

    async def _storage_reachable(self, tenant_id: str) -> bool:
        try:
            handle = self.get_storage_handle(tenant_id)
            await asyncio.wait_for(asyncio.to_thread(handle.ping), timeout=STORAGE_HEALTH_TIMEOUT)
        except Exception as e:
            logger.warning(f"Storage of {tenant_id} unreachable: {e}")
            return False
        return True

    async def _remote_reachable(self, profile: TenantProfile) -> bool:
        if not profile.remote_tools_enabled or self.connection_manager is None:
            return True
        return await self.connection_manager.probe(profile.tenant_id)

    async def health_check(self) -> Dict[str, bool]:
        """
        Check every tenant not under maintenance.

        A tenant is healthy only if storage and, when enabled, the remote tool
        endpoint respond within their timeouts. Unreachable storage downgrades
        the tenant to offline; a later passing check restores it to active.
        """
        tenants = [p for p in self.profiles.values() if p.status != TenantStatus.MAINTENANCE]

        async def check(profile: TenantProfile) -> bool:
            storage_ok, remote_ok = await asyncio.gather(
                self._storage_reachable(profile.tenant_id),
                self._remote_reachable(profile),
            )
            if not storage_ok and profile.status == TenantStatus.ACTIVE:
                logger.warning(f"Tenant {profile.tenant_id} downgraded to offline")
                profile.status = TenantStatus.OFFLINE
            elif storage_ok and profile.status == TenantStatus.OFFLINE:
                logger.info(f"Tenant {profile.tenant_id} restored to active")
                profile.status = TenantStatus.ACTIVE
            return storage_ok and remote_ok

        results = await asyncio.gather(*(check(p) for p in tenants))
        return {profile.tenant_id: healthy for profile, healthy in zip(tenants, results)}

    def close(self) -> None:
        with self._handles_lock:
            for handle in self._handles.values():
                handle.dispose()
            self._handles.clear()
