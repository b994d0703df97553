"""Tests for tenant resolution and storage handle provisioning."""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import AsyncMock, MagicMock

import pytest

from centerhub.infra.error_handler import TenantNotFoundError
from centerhub.models.tenant import RoutingSignals, TenantStatus
from centerhub.services.tenant_router import TenantRouter


class TestTenantRouter:
    """Test routing precedence, handle reuse and health checks."""

    @pytest.fixture
    def router(self, profiles):
        router = TenantRouter(profiles, "default")
        yield router
        router.close()

    def test_default_must_exist(self, profiles):
        with pytest.raises(TenantNotFoundError):
            TenantRouter(profiles, "bogota")

    def test_no_signals_resolves_default(self, router):
        assert router.resolve_tenant(RoutingSignals()).tenant_id == "default"

    def test_signal_precedence(self, router):
        """Explicit tenant id beats identity, which beats the query parameter."""
        assert router.resolve_tenant(
            RoutingSignals(tenant_id="cucuta", identity_tenant_id="default", query_tenant_id="default")
        ).tenant_id == "cucuta"
        assert router.resolve_tenant(
            RoutingSignals(identity_tenant_id="cucuta", query_tenant_id="default")
        ).tenant_id == "cucuta"
        assert router.resolve_tenant(RoutingSignals(query_tenant_id="cucuta")).tenant_id == "cucuta"

    def test_unknown_tenant_resolves_default(self, router):
        """Unknown tenant ids never raise during resolution."""
        assert router.resolve_tenant(RoutingSignals(tenant_id="bogota")).tenant_id == "default"

    def test_get_profile_unknown(self, router):
        with pytest.raises(TenantNotFoundError) as exc_info:
            router.get_profile("bogota")
        assert exc_info.value.message == "Unknown tenant: bogota"

    def test_storage_handle_created_once(self, router):
        """Concurrent first use yields a single handle."""
        with ThreadPoolExecutor(max_workers=8) as pool:
            handles = list(pool.map(lambda _: router.get_storage_handle("cucuta"), range(16)))

        assert all(handle is handles[0] for handle in handles)
        assert router.get_storage_handle("default") is not handles[0]

    @pytest.mark.asyncio
    async def test_health_check(self, profiles):
        connection_manager = MagicMock()
        connection_manager.probe = AsyncMock(return_value=False)
        router = TenantRouter(profiles, "default", connection_manager=connection_manager)
        try:
            result = await router.health_check()
        finally:
            router.close()

        assert result == {"default": True, "cucuta": False}
        connection_manager.probe.assert_awaited_once_with("cucuta")

    @pytest.mark.asyncio
    async def test_health_check_downgrades_and_restores(self, make_profile):
        profiles = {
            "default": make_profile("default"),
            "broken": make_profile("broken", storage_url="sqlite:////nonexistent-dir/broken.db"),
            "paused": make_profile("paused", status=TenantStatus.MAINTENANCE),
        }
        router = TenantRouter(profiles, "default")
        try:
            result = await router.health_check()
            assert result == {"default": True, "broken": False}
            assert profiles["broken"].status == TenantStatus.OFFLINE

            profiles["default"].status = TenantStatus.OFFLINE
            await router.health_check()
            assert profiles["default"].status == TenantStatus.ACTIVE
        finally:
            router.close()
