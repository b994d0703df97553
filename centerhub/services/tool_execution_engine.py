"""Tool execution engine that dispatches internal and remote tools."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Union

from centerhub.adapters.mcp_client import MCPConnectionManager
from centerhub.infra.error_handler import ToolServerConnectionError
from centerhub.infra.metrics import tool_call_duration, tool_calls_total
from centerhub.logging.event_logger import log_tool_call
from centerhub.models.connection import ConnectionStatus
from centerhub.models.tenant import DedupPolicy, TenantProfile
from centerhub.models.tool import (
    ToolCallRecord,
    ToolDescriptor,
    ToolInvocation,
    ToolInvocationResult,
    ToolOrigin,
)
from centerhub.services.fallback_tools import FallbackToolProvider
from centerhub.services.tool_call_ledger import ToolCallLedger

logger = logging.getLogger(__name__)


@dataclass
class ExecutionContext:
    """Per-turn context shared by every tool call of the turn."""
    profile: TenantProfile
    conversation_id: str
    owner_id: str
    ledger: ToolCallLedger


InternalHandler = Callable[[Dict[str, Any], ExecutionContext], Awaitable[Any]]


class InternalTool:
    """Tool executed in-process."""

    def __init__(self, descriptor: ToolDescriptor, handler: InternalHandler):
        self.descriptor = descriptor
        self.handler = handler

    async def invoke(self, invocation: ToolInvocation, ctx: ExecutionContext) -> ToolInvocationResult:
        try:
            payload = await self.handler(invocation.arguments, ctx)
        except Exception as e:
            logger.error(f"Internal tool {invocation.tool_name} failed: {e}", exc_info=True)
            return ToolInvocationResult.failure(invocation, str(e), source="internal")
        return ToolInvocationResult.ok(invocation, payload, source="internal")


class RemoteTool:
    """Tool executed on the tenant's remote server, degrading to the fallback provider."""

    def __init__(
        self,
        descriptor: ToolDescriptor,
        connection_manager: MCPConnectionManager,
        fallback_provider: FallbackToolProvider,
    ):
        self.descriptor = descriptor
        self.connection_manager = connection_manager
        self.fallback_provider = fallback_provider

    async def invoke(self, invocation: ToolInvocation, ctx: ExecutionContext) -> ToolInvocationResult:
        profile = ctx.profile
        tenant_id = profile.tenant_id

        if profile.dedup_policy_for(invocation.tool_name) == DedupPolicy.REUSE_PRIOR_SUCCESS:
            prior = await ctx.ledger.find_prior_success(ctx.conversation_id, invocation.tool_name, invocation.arguments)
            if prior is not None:
                logger.info(f"Reusing prior result of {invocation.tool_name} in {ctx.conversation_id}")
                return ToolInvocationResult.ok(invocation, prior.payload, source="ledger")

        if not profile.remote_tools_enabled:
            return await self._fallback(invocation, profile, "remote tools are disabled")

        state = self.connection_manager.get_state(tenant_id)
        if state is not None and state.status == ConnectionStatus.ERROR:
            return await self._fallback(invocation, profile, f"connection unhealthy: {state.last_error}")

        if state is None or not state.is_connected:
            try:
                await self.connection_manager.connect(tenant_id)
            except ToolServerConnectionError as e:
                return await self._fallback(invocation, profile, e.message)

        result = await self.connection_manager.invoke(tenant_id, invocation)
        if not result.success and self.fallback_provider.has_fallback(invocation.tool_name):
            return await self._fallback(invocation, profile, result.error or "remote call failed")
        return result

    async def _fallback(self, invocation: ToolInvocation, profile: TenantProfile, reason: str) -> ToolInvocationResult:
        if not profile.fallback_enabled:
            return ToolInvocationResult.failure(
                invocation,
                f"Remote tools unavailable for {profile.tenant_id}: {reason}",
                source="remote",
            )
        logger.warning(f"Using fallback for {invocation.tool_name} in {profile.tenant_id}: {reason}")
        return await self.fallback_provider.invoke(invocation)


class ToolExecutionEngine:
    """Executes the tool calls selected for a turn."""

    def __init__(self, connection_manager: MCPConnectionManager, fallback_provider: FallbackToolProvider):
        self.connection_manager = connection_manager
        self.fallback_provider = fallback_provider
        self._internal_handlers: Dict[str, InternalHandler] = {
            "get_previous_tool_calls": self._get_previous_tool_calls,
            "describe_tenant": self._describe_tenant,
        }

    def resolve_tool(self, descriptor: ToolDescriptor) -> Union[InternalTool, RemoteTool]:
        """Select the implementation by the descriptor's origin."""
        if descriptor.origin == ToolOrigin.INTERNAL:
            handler = self._internal_handlers.get(descriptor.name)
            if handler is None:
                raise ValueError(f"No handler for internal tool: {descriptor.name}")
            return InternalTool(descriptor, handler)
        return RemoteTool(descriptor, self.connection_manager, self.fallback_provider)

    async def execute(
        self,
        invocations: List[ToolInvocation],
        catalog: Dict[str, ToolDescriptor],
        ctx: ExecutionContext,
    ) -> List[ToolInvocationResult]:
        """
        Execute invocations concurrently and record each outcome to the ledger.

        Args:
            invocations: Calls selected by the decision pass
            catalog: Tools advertised this turn, by name
            ctx: Execution context of the turn

        Returns:
            One result per invocation, in the same order
        """
        results = await asyncio.gather(*(self._run(inv, catalog, ctx) for inv in invocations))

        # Results answered from the ledger are already recorded
        await asyncio.gather(*(
            ctx.ledger.record(
                ctx.conversation_id,
                ToolCallRecord(
                    tool_name=result.tool_name,
                    arguments=invocation.arguments,
                    success=result.success,
                    call_id=result.call_id,
                    payload=result.payload,
                    error=result.error,
                ),
            )
            for invocation, result in zip(invocations, results)
            if result.source != "ledger"
        ))
        return list(results)

    async def _run(
        self,
        invocation: ToolInvocation,
        catalog: Dict[str, ToolDescriptor],
        ctx: ExecutionContext,
    ) -> ToolInvocationResult:
        start_time = time.time()
        descriptor = catalog.get(invocation.tool_name)
        try:
            if descriptor is None:
                result = ToolInvocationResult.failure(
                    invocation,
                    f"Tool '{invocation.tool_name}' is not available",
                    source="internal",
                )
            else:
                result = await self.resolve_tool(descriptor).invoke(invocation, ctx)
        except Exception as e:
            logger.error(f"Tool {invocation.tool_name} raised: {e}", exc_info=True)
            result = ToolInvocationResult.failure(invocation, str(e), source="internal")

        # Remote calls are measured by the connection manager
        if result.source != "remote":
            latency = time.time() - start_time
            status = "success" if result.success else "failure"
            tool_calls_total.labels(tool_name=invocation.tool_name, source=result.source, status=status).inc()
            tool_call_duration.labels(tool_name=invocation.tool_name, source=result.source).observe(latency)
            log_tool_call(
                tenant_id=ctx.profile.tenant_id,
                tool_name=invocation.tool_name,
                source=result.source,
                arguments=invocation.arguments,
                status=status,
                error_message=result.error,
                latency_ms=int(latency * 1000),
                conversation_id=ctx.conversation_id,
                call_id=invocation.call_id,
            )
        return result

    async def _get_previous_tool_calls(self, arguments: Dict[str, Any], ctx: ExecutionContext) -> Dict[str, Any]:
        tool_name = arguments.get("tool_name")
        if not isinstance(tool_name, str) or not tool_name:
            raise ValueError("tool_name is required")
        call_arguments = arguments.get("arguments") or {}

        prior = await ctx.ledger.find_prior_success(ctx.conversation_id, tool_name, call_arguments)
        if prior is None:
            return {"found": False, "tool_name": tool_name}
        return {
            "found": True,
            "tool_name": tool_name,
            "timestamp": prior.timestamp.isoformat(),
            "payload": prior.payload,
        }

    async def _describe_tenant(self, arguments: Dict[str, Any], ctx: ExecutionContext) -> Dict[str, Any]:
        profile = ctx.profile
        return {
            "tenant_id": profile.tenant_id,
            "display_name": profile.display_name,
            "region": profile.region,
            "status": profile.status.value,
            "remote_tools_enabled": profile.remote_tools_enabled,
            "remote_tools_available": self.connection_manager.is_healthy(profile.tenant_id),
            "fallback_enabled": profile.fallback_enabled,
        }
