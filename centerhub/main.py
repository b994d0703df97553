"""Process wiring for the assistant core."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from centerhub.adapters.mcp_client import MCPConnectionManager
from centerhub.infra.config import config
from centerhub.infra.logging import setup_logging
from centerhub.models.tenant import TenantProfile
from centerhub.services.fallback_tools import FallbackToolProvider
from centerhub.services.orchestrator import ConversationOrchestrator
from centerhub.services.tenant_config_service import load_tenant_profiles
from centerhub.services.tenant_router import TenantRouter
from centerhub.services.tool_cache import ToolDiscoveryCache
from centerhub.services.tool_execution_engine import ToolExecutionEngine

logger = logging.getLogger(__name__)


def create_orchestrator(
    profiles: Optional[Dict[str, TenantProfile]] = None,
    default_tenant_id: Optional[str] = None,
    **orchestrator_kwargs,
) -> ConversationOrchestrator:
    """
    Build the orchestrator and its collaborators.

    Args:
        profiles: Tenant profiles; loaded from configuration when None
        default_tenant_id: Defaults to config.DEFAULT_TENANT_ID
        **orchestrator_kwargs: Passed to ConversationOrchestrator (e.g. inference_factory)

    Raises:
        ConfigurationError: If tenant profiles are invalid
    """
    default_tenant_id = default_tenant_id or config.DEFAULT_TENANT_ID
    if profiles is None:
        profiles = load_tenant_profiles(default_tenant_id=default_tenant_id)

    cache = ToolDiscoveryCache(
        default_ttl=config.TOOL_CACHE_TTL_SECONDS,
        sweep_interval=config.TOOL_CACHE_SWEEP_SECONDS,
    )
    connection_manager = MCPConnectionManager(
        profiles,
        cache=cache,
        health_check_interval=config.MCP_HEALTH_CHECK_INTERVAL,
    )
    fallback_provider = FallbackToolProvider(
        contacts={tid: p.contact for tid, p in profiles.items() if p.contact},
        display_names={tid: p.display_name for tid, p in profiles.items()},
    )
    router = TenantRouter(profiles, default_tenant_id, connection_manager=connection_manager)
    engine = ToolExecutionEngine(connection_manager, fallback_provider)

    return ConversationOrchestrator(
        router=router,
        connection_manager=connection_manager,
        fallback_provider=fallback_provider,
        execution_engine=engine,
        **orchestrator_kwargs,
    )


@asynccontextmanager
async def lifespan(**kwargs) -> AsyncIterator[ConversationOrchestrator]:
    """Lifespan context manager for startup and shutdown."""
    setup_logging()
    orchestrator = create_orchestrator(**kwargs)
    logger.info(f"Assistant core starting up ({config.APP_ENV})")
    try:
        yield orchestrator
    finally:
        logger.info("Assistant core shutting down")
        await orchestrator.close()
