"""Tests for the tool call ledger."""

from datetime import datetime, timedelta, timezone

import pytest

from centerhub.infra.database import StorageHandle
from centerhub.models.tool import ToolCallRecord
from centerhub.services.tool_call_ledger import ToolCallLedger, arguments_match


class TestArgumentsMatch:
    """Test structural argument comparison."""

    def test_key_order_does_not_matter(self):
        assert arguments_match({"id": "123", "month": "July"}, {"month": "July", "id": "123"})

    def test_nested_structures(self):
        assert arguments_match({"filters": {"ids": [1, 2]}}, {"filters": {"ids": [1, 2]}})
        assert not arguments_match({"filters": {"ids": [1, 2]}}, {"filters": {"ids": [2, 1]}})

    def test_bool_never_equals_number(self):
        assert not arguments_match({"active": True}, {"active": 1})
        assert not arguments_match({"active": 0}, {"active": False})
        assert arguments_match({"active": True}, {"active": True})

    def test_numbers_compare_numerically(self):
        assert arguments_match({"qty": 1}, {"qty": 1.0})

    def test_type_mismatch(self):
        assert not arguments_match({"id": "1"}, {"id": 1})
        assert not arguments_match({"id": None}, {"id": "None"})
        assert not arguments_match({"a": 1}, {"a": 1, "b": 2})


class TestToolCallLedger:
    """Test recording and lookup against SQLite storage."""

    @pytest.fixture
    def ledger(self, tmp_path):
        handle = StorageHandle("cucuta", f"sqlite:///{tmp_path / 'ledger.db'}")
        yield ToolCallLedger(handle)
        handle.dispose()

    @pytest.mark.asyncio
    async def test_record_and_history(self, ledger):
        record = ToolCallRecord(
            tool_name="get_rendimientos",
            arguments={"id": "123", "month": "July"},
            success=True,
            call_id="call_1",
            payload={"rendimiento": 42},
        )

        assert await ledger.record("conv-1", record) is True

        history = await ledger.history("conv-1")
        assert len(history) == 1
        assert history[0].payload == {"rendimiento": 42}
        assert history[0].timestamp.tzinfo is not None
        assert await ledger.history("conv-2") == []

    @pytest.mark.asyncio
    async def test_find_prior_success_returns_latest_match(self, ledger):
        base = datetime.now(timezone.utc)
        for offset, payload in ((0, {"v": 1}), (1, {"v": 2})):
            await ledger.record("conv-1", ToolCallRecord(
                tool_name="get_rendimientos",
                arguments={"id": "123"},
                timestamp=base + timedelta(seconds=offset),
                success=True,
                payload=payload,
            ))
        await ledger.record("conv-1", ToolCallRecord(
            tool_name="get_rendimientos",
            arguments={"id": "123"},
            timestamp=base + timedelta(seconds=2),
            success=False,
            error="timeout",
        ))

        match = await ledger.find_prior_success("conv-1", "get_rendimientos", {"id": "123"})

        assert match.payload == {"v": 2}
        assert await ledger.find_prior_success("conv-1", "get_rendimientos", {"id": "456"}) is None
        assert await ledger.find_prior_success("conv-1", "check_inventory", {"id": "123"}) is None

    @pytest.mark.asyncio
    async def test_failures_are_not_raised(self, ledger, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(ledger, "_insert", broken)
        monkeypatch.setattr(ledger, "_select", broken)

        record = ToolCallRecord(tool_name="x", arguments={}, success=True)
        assert await ledger.record("conv-1", record) is False
        assert await ledger.find_prior_success("conv-1", "x", {}) is None
