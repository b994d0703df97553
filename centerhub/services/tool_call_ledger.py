"""Append-only per-conversation record of executed tool calls."""

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, select

from centerhub.infra.database import StorageHandle, as_utc, tool_call_records
from centerhub.models.tool import ToolCallRecord

logger = logging.getLogger(__name__)


def arguments_match(left: Any, right: Any) -> bool:
    """Structural deep equality. Booleans never equal numbers."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, dict) and isinstance(right, dict):
        if left.keys() != right.keys():
            return False
        return all(arguments_match(left[key], right[key]) for key in left)
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        if len(left) != len(right):
            return False
        return all(arguments_match(a, b) for a, b in zip(left, right))
    if isinstance(left, (dict, list, tuple)) or isinstance(right, (dict, list, tuple)):
        return False
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    return type(left) is type(right) and left == right


class ToolCallLedger:
    """Tool-call history stored alongside the tenant's conversations."""

    def __init__(self, handle: StorageHandle):
        self.handle = handle

    def _insert(self, conversation_id: str, record: ToolCallRecord) -> None:
        with self.handle.session() as session:
            session.execute(
                tool_call_records.insert().values(
                    id=str(uuid.uuid4()),
                    conversation_id=conversation_id,
                    call_id=record.call_id,
                    tool_name=record.tool_name,
                    arguments=record.arguments,
                    success=record.success,
                    payload=record.payload,
                    error=record.error,
                    created_at=record.timestamp,
                )
            )

    def _select(self, conversation_id: str, tool_name: Optional[str] = None, only_success: bool = False) -> List[ToolCallRecord]:
        conditions = [tool_call_records.c.conversation_id == conversation_id]
        if tool_name is not None:
            conditions.append(tool_call_records.c.tool_name == tool_name)
        if only_success:
            conditions.append(tool_call_records.c.success.is_(True))

        with self.handle.session() as session:
            rows = session.execute(
                select(tool_call_records)
                .where(and_(*conditions))
                .order_by(tool_call_records.c.created_at)
            ).fetchall()

        return [
            ToolCallRecord(
                tool_name=row.tool_name,
                arguments=row.arguments or {},
                timestamp=as_utc(row.created_at),
                success=row.success,
                call_id=row.call_id,
                payload=row.payload,
                error=row.error,
            )
            for row in rows
        ]

    async def record(self, conversation_id: str, record: ToolCallRecord) -> bool:
        """
        Append a record. Persistence failures are logged, never raised.

        Returns:
            True if the record was stored
        """
        try:
            await asyncio.to_thread(self._insert, conversation_id, record)
        except Exception as e:
            logger.error(
                f"Failed to record tool call {record.tool_name} for conversation {conversation_id}: {e}",
                exc_info=True,
            )
            return False
        return True

    async def find_prior_success(
        self,
        conversation_id: str,
        tool_name: str,
        arguments: Dict[str, Any],
    ) -> Optional[ToolCallRecord]:
        """Most recent successful call with structurally equal arguments, if any."""
        try:
            records = await asyncio.to_thread(self._select, conversation_id, tool_name, True)
        except Exception as e:
            logger.warning(f"Ledger lookup failed for {tool_name} in {conversation_id}: {e}")
            return None

        for record in reversed(records):
            if arguments_match(record.arguments, arguments):
                return record
        return None

    async def history(self, conversation_id: str) -> List[ToolCallRecord]:
        return await asyncio.to_thread(self._select, conversation_id)
