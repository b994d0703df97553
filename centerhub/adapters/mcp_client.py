"""MCP (Model Context Protocol) connection manager for remote tool discovery and execution."""

import asyncio
import json
import logging
import secrets
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

import httpx

from centerhub.adapters.mcp_adapter import ToolSchemaAdapter, tool_schema_adapter
from centerhub.infra.config import config
from centerhub.infra.error_handler import ProtocolError, ToolServerConnectionError, ValidationError
from centerhub.infra.metrics import mcp_connection_status, tool_call_duration, tool_calls_total
from centerhub.infra.timeout import DISCOVERY_TIMEOUT, HANDSHAKE_TIMEOUT, TOOL_EXECUTION_TIMEOUT
from centerhub.logging.event_logger import log_event, log_tool_call
from centerhub.models.connection import ConnectionState, ConnectionStatus
from centerhub.models.tenant import TenantProfile
from centerhub.models.tool import ToolDescriptor, ToolInvocation, ToolInvocationResult, ToolOrigin
from centerhub.services.tool_cache import ToolDiscoveryCache

logger = logging.getLogger(__name__)

STATUS_GAUGE_VALUES = {
    ConnectionStatus.DISCONNECTED: 0,
    ConnectionStatus.CONNECTING: 1,
    ConnectionStatus.CONNECTED: 2,
    ConnectionStatus.ERROR: 3,
}


def health_url(endpoint: str) -> str:
    """GET /health lives at the root of the endpoint's host."""
    parts = urlsplit(endpoint)
    return f"{parts.scheme}://{parts.netloc}/health"


class MCPConnectionManager:
    """Owns per-tenant connection state to remote tool servers.

    MCP protocol uses JSON-RPC 2.0 over HTTP. One ConnectionState and at most
    one background health loop exist per tenant.
    """

    def __init__(
        self,
        profiles: Dict[str, TenantProfile],
        cache: Optional[ToolDiscoveryCache] = None,
        adapter: ToolSchemaAdapter = tool_schema_adapter,
        health_check_interval: float = config.MCP_HEALTH_CHECK_INTERVAL,
    ):
        self.profiles = profiles
        self.cache = cache or ToolDiscoveryCache()
        self.adapter = adapter
        self.health_check_interval = health_check_interval
        self._states: Dict[str, ConnectionState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._health_tasks: Dict[str, asyncio.Task] = {}

    def _lock_for(self, tenant_id: str) -> asyncio.Lock:
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = self._locks[tenant_id] = asyncio.Lock()
        return lock

    def _endpoint_for(self, tenant_id: str) -> str:
        profile = self.profiles.get(tenant_id)
        if profile is None or not profile.remote_tool_endpoint:
            raise ToolServerConnectionError(f"No remote tool endpoint configured for {tenant_id}", tenant_id)
        return profile.remote_tool_endpoint

    def _set_status(self, state: ConnectionState, status: ConnectionStatus) -> None:
        state.status = status
        mcp_connection_status.labels(tenant_id=state.tenant_id).set(STATUS_GAUGE_VALUES[status])

    async def connect(self, tenant_id: str) -> ConnectionState:
        """
        Connect to a tenant's remote tool server.

        Idempotent: an existing connected state is returned unchanged without
        a second handshake.

        Args:
            tenant_id: Tenant ID

        Returns:
            The tenant's ConnectionState

        Raises:
            ToolServerConnectionError: If no endpoint is configured or the handshake fails
        """
        state = self._states.get(tenant_id)
        if state is not None and state.is_connected:
            return state

        async with self._lock_for(tenant_id):
            # Another turn may have connected while we waited
            state = self._states.get(tenant_id)
            if state is not None and state.is_connected:
                return state

            endpoint = self._endpoint_for(tenant_id)
            if state is None:
                state = ConnectionState(tenant_id=tenant_id, endpoint_url=endpoint)
                self._states[tenant_id] = state

            self._set_status(state, ConnectionStatus.CONNECTING)
            start_time = time.time()
            try:
                await self._handshake(state.endpoint_url)
            except Exception as e:
                state.last_error = str(e) or type(e).__name__
                self._set_status(state, ConnectionStatus.ERROR)
                logger.warning(f"Handshake with remote tool server of {tenant_id} failed: {state.last_error}")
                log_event(
                    tenant_id=tenant_id,
                    event_type="mcp_connect",
                    provider="mcp",
                    status="failure",
                    latency_ms=int((time.time() - start_time) * 1000),
                    payload={"endpoint": state.endpoint_url, "error": state.last_error},
                )
                raise ToolServerConnectionError(
                    f"Could not connect to remote tool server of {tenant_id}: {state.last_error}",
                    tenant_id,
                ) from e

            state.last_health_check = datetime.now(timezone.utc)
            state.last_error = None
            self._set_status(state, ConnectionStatus.CONNECTED)
            logger.info(f"Connected to remote tool server of {tenant_id} at {state.endpoint_url}")
            log_event(
                tenant_id=tenant_id,
                event_type="mcp_connect",
                provider="mcp",
                latency_ms=int((time.time() - start_time) * 1000),
                payload={"endpoint": state.endpoint_url},
            )
            self.start_health_loop(tenant_id)
            return state

    async def _handshake(self, endpoint: str) -> None:
        async with httpx.AsyncClient(timeout=HANDSHAKE_TIMEOUT) as client:
            response = await client.get(health_url(endpoint))
            response.raise_for_status()

    async def _rpc(self, endpoint: str, method: str, params: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        """Send one JSON-RPC 2.0 request and return the decoded response body."""
        jsonrpc_request = {
            "jsonrpc": "2.0",
            "id": f"{method.replace('/', '_')}_{secrets.token_hex(4)}",
            "method": method,
            "params": params,
        }
        headers = {
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(endpoint, json=jsonrpc_request, headers=headers)
            response.raise_for_status()
            try:
                body = response.json()
            except ValueError as e:
                raise ProtocolError(f"MCP response parsing failed: {e}") from e

        if not isinstance(body, dict):
            raise ProtocolError(f"MCP response is not an object: {type(body).__name__}")
        return body

    async def list_tools(self, tenant_id: str) -> List[ToolDescriptor]:
        """
        Get the remote tool catalog of a tenant, cache first.

        Raises:
            ToolServerConnectionError: If the server cannot be reached
            ProtocolError: If the manifest is malformed
        """
        cached = self.cache.get(tenant_id)
        if cached is not None:
            logger.debug(f"Tools for {tenant_id} served from cache")
            return cached

        state = self._states.get(tenant_id)
        if state is None or not state.is_connected:
            state = await self.connect(tenant_id)

        try:
            body = await self._rpc(state.endpoint_url, "tools/list", {}, DISCOVERY_TIMEOUT)
        except httpx.HTTPError as e:
            raise ToolServerConnectionError(f"Tool discovery for {tenant_id} failed: {e}", tenant_id) from e

        if "error" in body:
            error = body["error"] if isinstance(body["error"], dict) else {"message": str(body["error"])}
            raise ProtocolError(f"tools/list failed: {error.get('message', 'Unknown error')}")

        result = body.get("result")
        entries = result.get("tools") if isinstance(result, dict) else None
        if not isinstance(entries, list):
            raise ProtocolError("tools/list response has no tools array")

        descriptors = []
        for entry in entries:
            try:
                descriptors.append(self._normalize_tool(entry))
            except ValidationError as e:
                logger.warning(f"Dropping remote tool of {tenant_id}: {e.message}")
        descriptors = self.adapter.filter_valid(descriptors)

        self.cache.put(tenant_id, descriptors)
        logger.info(f"Discovered {len(descriptors)} remote tools for {tenant_id}")
        return list(descriptors)

    def _normalize_tool(self, entry: Any) -> ToolDescriptor:
        if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
            raise ValidationError(f"Tool entry without a name: {str(entry)[:100]}")

        schema = entry.get("inputSchema", entry.get("parameters"))
        if schema is None:
            schema = {"type": "object", "properties": {}}
        if not isinstance(schema, dict):
            raise ValidationError(f"Tool '{entry['name']}' has a non-object input schema")

        description = entry.get("description")
        return ToolDescriptor(
            name=entry["name"],
            description=description if isinstance(description, str) else "",
            parameters_schema=schema,
            origin=ToolOrigin.REMOTE,
        )

    async def invoke(self, tenant_id: str, invocation: ToolInvocation) -> ToolInvocationResult:
        """
        Execute a remote tool. Never raises; failures come back as data.

        Requires a connected state; callers without one must connect first or
        use the fallback provider.
        """
        start_time = time.time()
        state = self._states.get(tenant_id)
        if state is None or not state.is_connected:
            result = ToolInvocationResult.failure(
                invocation,
                f"No active remote tool connection for {tenant_id}",
                source="remote",
            )
        else:
            try:
                body = await self._rpc(
                    state.endpoint_url,
                    "tools/call",
                    {"name": invocation.tool_name, "arguments": invocation.arguments},
                    TOOL_EXECUTION_TIMEOUT,
                )
                result = self._parse_call_result(invocation, body)
            except Exception as e:
                logger.error(f"Remote tool {invocation.tool_name} failed for {tenant_id}: {e}")
                result = ToolInvocationResult.failure(
                    invocation,
                    f"Remote tool call failed: {str(e) or type(e).__name__}",
                    source="remote",
                )

        latency = time.time() - start_time
        status = "success" if result.success else "failure"
        tool_calls_total.labels(tool_name=invocation.tool_name, source="remote", status=status).inc()
        tool_call_duration.labels(tool_name=invocation.tool_name, source="remote").observe(latency)
        log_tool_call(
            tenant_id=tenant_id,
            tool_name=invocation.tool_name,
            source="remote",
            arguments=invocation.arguments,
            status=status,
            error_message=result.error,
            latency_ms=int(latency * 1000),
            conversation_id=invocation.conversation_id,
            call_id=invocation.call_id,
        )
        return result

    def _parse_call_result(self, invocation: ToolInvocation, body: Dict[str, Any]) -> ToolInvocationResult:
        # Handle JSON-RPC 2.0 error object
        if "error" in body and body["error"] is not None:
            error = body["error"]
            message = error.get("message", "Unknown error") if isinstance(error, dict) else str(error)
            return ToolInvocationResult.failure(invocation, message, source="remote")

        result = body.get("result")
        if not isinstance(result, dict):
            raise ProtocolError("tools/call response has no result object")

        content = result.get("content") or []
        if not isinstance(content, list):
            raise ProtocolError("tools/call result content is not a list")

        # Only text blocks are interpreted
        texts = [
            block["text"]
            for block in content
            if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str)
        ]

        if result.get("isError"):
            message = "\n".join(texts) or "Remote tool reported an error"
            return ToolInvocationResult.failure(invocation, message, source="remote")

        payloads = [self._decode_text(text) for text in texts]
        if not payloads:
            payload: Any = {}
        elif len(payloads) == 1:
            payload = payloads[0]
        else:
            payload = payloads
        return ToolInvocationResult.ok(invocation, payload, source="remote")

    @staticmethod
    def _decode_text(text: str) -> Any:
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return {"raw_content": text}

    def start_health_loop(self, tenant_id: str) -> None:
        """Start the periodic health check, cancelling any previous loop for the tenant."""
        existing = self._health_tasks.pop(tenant_id, None)
        if existing is not None and not existing.done():
            existing.cancel()
        self._health_tasks[tenant_id] = asyncio.create_task(
            self._health_loop(tenant_id),
            name=f"mcp-health-{tenant_id}",
        )

    async def _health_loop(self, tenant_id: str) -> None:
        while True:
            await asyncio.sleep(self.health_check_interval)
            try:
                healthy = await self.check_health(tenant_id)
                if not healthy:
                    logger.warning(f"Health check failed for {tenant_id}, attempting reconnect")
                    await self._reconnect(tenant_id)
            except Exception as e:
                logger.error(f"Health loop error for {tenant_id}: {e}", exc_info=True)

    async def check_health(self, tenant_id: str) -> bool:
        """Probe the tenant's server and update its state."""
        state = self._states.get(tenant_id)
        if state is None or state.status == ConnectionStatus.DISCONNECTED:
            return False

        try:
            await self._handshake(state.endpoint_url)
        except Exception as e:
            state.last_error = str(e) or type(e).__name__
            self._set_status(state, ConnectionStatus.ERROR)
            return False

        state.last_health_check = datetime.now(timezone.utc)
        state.last_error = None
        if state.status == ConnectionStatus.ERROR:
            self._set_status(state, ConnectionStatus.CONNECTED)
            task = self._health_tasks.get(tenant_id)
            if task is None or task.done():
                self.start_health_loop(tenant_id)
        return True

    async def _reconnect(self, tenant_id: str) -> bool:
        """One reconnect attempt from the health loop.

        The state stays ERROR until the handshake succeeds, so tool calls made
        meanwhile go to the fallback provider instead of waiting on the lock.
        """
        async with self._lock_for(tenant_id):
            state = self._states.get(tenant_id)
            if state is None or state.status == ConnectionStatus.DISCONNECTED:
                return False

            try:
                await self._handshake(state.endpoint_url)
            except Exception as e:
                state.last_error = str(e) or type(e).__name__
                self._set_status(state, ConnectionStatus.ERROR)
                logger.warning(f"Reconnect to {tenant_id} failed: {state.last_error}")
                return False

            state.last_health_check = datetime.now(timezone.utc)
            state.last_error = None
            self._set_status(state, ConnectionStatus.CONNECTED)
            logger.info(f"Reconnected to remote tool server of {tenant_id}")
            return True

    async def probe(self, tenant_id: str) -> bool:
        """Stateless reachability check of a tenant's endpoint."""
        try:
            await self._handshake(self._endpoint_for(tenant_id))
        except Exception as e:
            logger.debug(f"Probe of {tenant_id} failed: {e}")
            return False
        return True

    async def disconnect(self, tenant_id: str) -> None:
        """Mark disconnected, stop the health loop and drop the cached catalog."""
        task = self._health_tasks.pop(tenant_id, None)
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        state = self._states.get(tenant_id)
        if state is not None:
            self._set_status(state, ConnectionStatus.DISCONNECTED)
            logger.info(f"Disconnected from remote tool server of {tenant_id}")

        self.cache.invalidate(tenant_id)

    def get_state(self, tenant_id: str) -> Optional[ConnectionState]:
        return self._states.get(tenant_id)

    def is_healthy(self, tenant_id: str) -> bool:
        state = self._states.get(tenant_id)
        return state is not None and state.is_connected

    def active_connections(self) -> List[ConnectionState]:
        return [state for state in self._states.values() if state.is_connected]

    def health_snapshot(self) -> Dict[str, bool]:
        """Connection health of every tenant with remote tools enabled."""
        return {
            tenant_id: self.is_healthy(tenant_id)
            for tenant_id, profile in self.profiles.items()
            if profile.remote_tools_enabled
        }

    async def close(self) -> None:
        for tenant_id in set(self._states) | set(self._health_tasks):
            await self.disconnect(tenant_id)
        await self.cache.close()
