"""Tests for tool dispatch, fallback and ledger recording."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from centerhub.infra.database import StorageHandle
from centerhub.infra.error_handler import ToolServerConnectionError
from centerhub.models.connection import ConnectionState, ConnectionStatus
from centerhub.models.tenant import DedupPolicy
from centerhub.models.tool import ToolCallRecord, ToolDescriptor, ToolInvocation, ToolInvocationResult, ToolOrigin
from centerhub.services.fallback_tools import FallbackToolProvider
from centerhub.services.tool_call_ledger import ToolCallLedger
from centerhub.services.tool_execution_engine import ExecutionContext, InternalTool, RemoteTool, ToolExecutionEngine
from centerhub.services.tool_registry import get_internal_tools, merge_catalogs

ENDPOINT = "https://mcp.cucuta.example.com/api/mcp"

REMOTE_TOOLS = [
    ToolDescriptor(name="get_rendimientos", description="Monthly performance", origin=ToolOrigin.REMOTE),
    ToolDescriptor(name="general_info", description="Logistics information", origin=ToolOrigin.REMOTE),
]


def _invocation(tool_name, /, call_id="call_1", **arguments):
    return ToolInvocation(
        call_id=call_id,
        tool_name=tool_name,
        arguments=arguments,
        tenant_id="cucuta",
        conversation_id="conv-1",
    )


def _state(status):
    return ConnectionState(tenant_id="cucuta", endpoint_url=ENDPOINT, status=status, last_error="refused")


class TestToolExecutionEngine:
    """Test execution paths against a mocked connection manager."""

    @pytest.fixture
    def connection_manager(self):
        manager = MagicMock()
        manager.get_state = MagicMock(return_value=_state(ConnectionStatus.CONNECTED))
        manager.connect = AsyncMock()
        manager.is_healthy = MagicMock(return_value=True)
        manager.invoke = AsyncMock(
            side_effect=lambda tenant_id, inv: ToolInvocationResult.ok(inv, {"rendimiento": 42}, source="remote")
        )
        return manager

    @pytest.fixture
    def ledger(self, tmp_path):
        handle = StorageHandle("cucuta", f"sqlite:///{tmp_path / 'engine.db'}")
        yield ToolCallLedger(handle)
        handle.dispose()

    @pytest.fixture
    def ctx(self, profiles, ledger):
        return ExecutionContext(profile=profiles["cucuta"], conversation_id="conv-1", owner_id="user-1", ledger=ledger)

    @pytest.fixture
    def engine(self, connection_manager):
        return ToolExecutionEngine(connection_manager, FallbackToolProvider())

    @pytest.fixture
    def catalog(self):
        return {tool.name: tool for tool in merge_catalogs(get_internal_tools(), REMOTE_TOOLS)}

    def test_resolve_tool_by_origin(self, engine, catalog):
        assert isinstance(engine.resolve_tool(catalog["describe_tenant"]), InternalTool)
        assert isinstance(engine.resolve_tool(catalog["get_rendimientos"]), RemoteTool)

    @pytest.mark.asyncio
    async def test_remote_call_recorded(self, engine, catalog, ctx, connection_manager):
        """Each executed call lands in the ledger with its arguments."""
        results = await engine.execute([_invocation("get_rendimientos", id="123", month="July")], catalog, ctx)

        assert results[0].success is True
        assert results[0].payload == {"rendimiento": 42}
        connection_manager.connect.assert_not_called()

        [record] = await ctx.ledger.history("conv-1")
        assert record.tool_name == "get_rendimientos"
        assert record.arguments == {"id": "123", "month": "July"}
        assert record.call_id == "call_1"

    @pytest.mark.asyncio
    async def test_results_keep_invocation_order(self, engine, catalog, ctx):
        invocations = [
            _invocation("get_rendimientos", call_id="a", id="1"),
            _invocation("describe_tenant", call_id="b"),
            _invocation("unknown_tool", call_id="c"),
        ]

        results = await engine.execute(invocations, catalog, ctx)

        assert [r.call_id for r in results] == ["a", "b", "c"]
        assert results[1].source == "internal"
        assert results[1].payload["tenant_id"] == "cucuta"
        assert results[2].success is False
        assert results[2].error == "Tool 'unknown_tool' is not available"
        assert len(await ctx.ledger.history("conv-1")) == 3

    @pytest.mark.asyncio
    async def test_unhealthy_connection_uses_fallback(self, engine, catalog, ctx, connection_manager):
        """Fallback-catalog tools still succeed while the connection is in ERROR."""
        connection_manager.get_state.return_value = _state(ConnectionStatus.ERROR)

        [result] = await engine.execute([_invocation("general_info", topic="delivery")], catalog, ctx)

        assert result.success is True
        assert result.source == "fallback"
        connection_manager.invoke.assert_not_called()

    @pytest.mark.asyncio
    async def test_unhealthy_connection_without_fallback_tool(self, engine, catalog, ctx, connection_manager):
        connection_manager.get_state.return_value = _state(ConnectionStatus.ERROR)

        [result] = await engine.execute([_invocation("get_rendimientos", id="1")], catalog, ctx)

        assert result.success is False
        assert "No fallback available" in result.error

    @pytest.mark.asyncio
    async def test_connects_when_disconnected(self, engine, catalog, ctx, connection_manager):
        connection_manager.get_state.return_value = None

        await engine.execute([_invocation("get_rendimientos", id="1")], catalog, ctx)

        connection_manager.connect.assert_awaited_once_with("cucuta")
        connection_manager.invoke.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connect_failure_uses_fallback(self, engine, catalog, ctx, connection_manager):
        connection_manager.get_state.return_value = None
        connection_manager.connect.side_effect = ToolServerConnectionError("refused", "cucuta")

        [result] = await engine.execute([_invocation("general_info", topic="ruta")], catalog, ctx)

        assert result.source == "fallback"
        assert result.payload["response"].startswith("Route planning")

    @pytest.mark.asyncio
    async def test_remote_failure_falls_back_for_fallback_tools(self, engine, catalog, ctx, connection_manager):
        connection_manager.invoke.side_effect = (
            lambda tenant_id, inv: ToolInvocationResult.failure(inv, "Remote tool call failed: boom", source="remote")
        )

        general, rendimientos = await engine.execute(
            [_invocation("general_info", call_id="a", topic="stock"), _invocation("get_rendimientos", call_id="b")],
            catalog,
            ctx,
        )

        assert general.success is True
        assert general.source == "fallback"
        assert rendimientos.success is False
        assert rendimientos.error == "Remote tool call failed: boom"

    @pytest.mark.asyncio
    async def test_fallback_disabled(self, engine, catalog, ctx, connection_manager):
        ctx.profile = ctx.profile.model_copy(update={"fallback_enabled": False})
        connection_manager.get_state.return_value = _state(ConnectionStatus.ERROR)

        [result] = await engine.execute([_invocation("general_info", topic="delivery")], catalog, ctx)

        assert result.success is False
        assert result.error.startswith("Remote tools unavailable for cucuta")

    @pytest.mark.asyncio
    async def test_always_invoke_ignores_ledger(self, engine, catalog, ctx, connection_manager):
        """By default repeated questions re-invoke the remote tool."""
        await ctx.ledger.record("conv-1", ToolCallRecord(
            tool_name="get_rendimientos", arguments={"id": "123"}, success=True, payload={"old": True},
        ))

        [result] = await engine.execute([_invocation("get_rendimientos", id="123")], catalog, ctx)

        assert result.payload == {"rendimiento": 42}
        connection_manager.invoke.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_reuse_prior_success_policy(self, engine, catalog, ctx, connection_manager):
        ctx.profile = ctx.profile.model_copy(update={"dedup_policy": DedupPolicy.REUSE_PRIOR_SUCCESS})
        await ctx.ledger.record("conv-1", ToolCallRecord(
            tool_name="get_rendimientos", arguments={"id": "123"}, success=True, payload={"old": True},
        ))

        [result] = await engine.execute([_invocation("get_rendimientos", id="123")], catalog, ctx)

        assert result.source == "ledger"
        assert result.payload == {"old": True}
        connection_manager.invoke.assert_not_called()
        assert len(await ctx.ledger.history("conv-1")) == 1

    @pytest.mark.asyncio
    async def test_get_previous_tool_calls(self, engine, catalog, ctx):
        await ctx.ledger.record("conv-1", ToolCallRecord(
            tool_name="get_rendimientos", arguments={"id": "123"}, success=True, payload={"v": 1},
        ))

        found, missing, invalid = await engine.execute(
            [
                _invocation("get_previous_tool_calls", call_id="a", tool_name="get_rendimientos", arguments={"id": "123"}),
                _invocation("get_previous_tool_calls", call_id="b", tool_name="get_rendimientos", arguments={"id": "9"}),
                _invocation("get_previous_tool_calls", call_id="c"),
            ],
            catalog,
            ctx,
        )

        assert found.payload["found"] is True
        assert found.payload["payload"] == {"v": 1}
        assert missing.payload == {"found": False, "tool_name": "get_rendimientos"}
        assert invalid.success is False
        assert invalid.error == "tool_name is required"


class TestMergeCatalogs:
    def test_internal_wins_on_conflict(self):
        remote = [
            ToolDescriptor(name="describe_tenant", description="Remote shadow", origin=ToolOrigin.REMOTE),
            ToolDescriptor(name="check_inventory", description="Stock", origin=ToolOrigin.REMOTE),
        ]

        merged = merge_catalogs(get_internal_tools(), remote)

        assert [t.name for t in merged] == ["get_previous_tool_calls", "describe_tenant", "check_inventory"]
        assert merged[1].origin == ToolOrigin.INTERNAL
