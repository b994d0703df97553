"""Tool descriptor, invocation and ledger record models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ToolOrigin(str, Enum):
    """Where a tool is executed."""
    INTERNAL = "internal"
    REMOTE = "remote"


class ToolDescriptor(BaseModel):
    """A named, schema-described capability offered to the inference service."""
    name: str = Field(..., description="Identifier-grammar tool name")
    description: str = Field(..., description="Human-readable description")
    parameters_schema: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON Schema for parameters (object/properties/required)"
    )
    origin: ToolOrigin = Field(..., description="'internal' | 'remote'")


class ToolInvocation(BaseModel):
    """One attempt to call a tool."""
    call_id: str
    tool_name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    tenant_id: str
    conversation_id: Optional[str] = None


class ToolInvocationResult(BaseModel):
    """Outcome of a ToolInvocation, correlated by call_id. Always returned, never raised."""
    call_id: str
    tool_name: str
    success: bool
    payload: Any = None
    error: Optional[str] = None
    source: str = Field(default="remote", description="'internal' | 'remote' | 'fallback' | 'ledger'")

    @classmethod
    def ok(cls, invocation: ToolInvocation, payload: Any, source: str) -> "ToolInvocationResult":
        return cls(
            call_id=invocation.call_id,
            tool_name=invocation.tool_name,
            success=True,
            payload=payload,
            source=source,
        )

    @classmethod
    def failure(cls, invocation: ToolInvocation, error: str, source: str) -> "ToolInvocationResult":
        return cls(
            call_id=invocation.call_id,
            tool_name=invocation.tool_name,
            success=False,
            error=error,
            source=source,
        )


class ToolCallRecord(BaseModel):
    """Append-only audit entry of an executed tool call."""
    tool_name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    success: bool
    call_id: Optional[str] = None
    payload: Any = None
    error: Optional[str] = None
