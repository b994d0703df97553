"""Event logging service."""

import logging
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


def log_event(
    tenant_id: str,
    event_type: str,
    provider: Optional[str] = None,
    status: str = "success",
    latency_ms: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
    conversation_id: Optional[str] = None,
) -> None:
    """
    Emit one structured audit event.

    Args:
        tenant_id: Tenant ID
        event_type: Event type (e.g., 'turn_completed', 'llm_call', 'mcp_connected')
        provider: Provider name (e.g., 'gemini', 'openai', 'mcp')
        status: 'success' | 'failure'
        latency_ms: Latency in milliseconds
        payload: Additional fields
        conversation_id: Optional conversation ID
    """
    try:
        logger.info(
            f"event {event_type}",
            extra={
                "tenant_id": tenant_id,
                "event_type": event_type,
                "provider": provider,
                "status": status,
                "latency_ms": latency_ms,
                "conversation_id": conversation_id,
                "payload": payload or {},
            },
        )
    except Exception as e:
        logger.warning(f"Failed to emit event {event_type}: {e}")


def log_tool_call(
    tenant_id: str,
    tool_name: str,
    source: str,
    arguments: Dict[str, Any],
    status: str = "success",
    error_message: Optional[str] = None,
    latency_ms: Optional[int] = None,
    conversation_id: Optional[str] = None,
    call_id: Optional[str] = None,
) -> None:
    """
    Emit one structured audit record for a tool call.

    Args:
        tenant_id: Tenant ID
        tool_name: Tool name
        source: 'internal' | 'remote' | 'fallback' | 'ledger'
        arguments: Tool arguments
        status: 'success' | 'failure'
        error_message: Error message if status is 'failure'
        latency_ms: Latency in milliseconds
        conversation_id: Optional conversation ID
        call_id: Invocation call id
    """
    try:
        logger.info(
            f"tool_call {tool_name} {status}",
            extra={
                "tenant_id": tenant_id,
                "event_type": "tool_call",
                "tool_name": tool_name,
                "source": source,
                "arguments": arguments or {},
                "status": status,
                # Truncate long errors
                "error_message": error_message[:200] if error_message else None,
                "latency_ms": latency_ms,
                "conversation_id": conversation_id,
                "call_id": call_id,
            },
        )
    except Exception as e:
        logger.warning(f"Failed to log tool call {tool_name}: {e}")
