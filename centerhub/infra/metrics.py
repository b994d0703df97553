"""Prometheus metrics export."""

from typing import Tuple

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST

# LLM metrics
llm_calls_total = Counter(
    "llm_calls_total",
    "Total LLM API calls",
    ["provider", "purpose", "status"],
)

llm_call_duration = Histogram(
    "llm_call_duration_seconds",
    "LLM API call duration in seconds",
    ["provider", "purpose"],
)

# Tool metrics
tool_calls_total = Counter(
    "tool_calls_total",
    "Total tool calls",
    ["tool_name", "source", "status"],  # source: internal | remote | fallback | ledger
)

tool_call_duration = Histogram(
    "tool_call_duration_seconds",
    "Tool call duration in seconds",
    ["tool_name", "source"],
)

tool_cache_lookups_total = Counter(
    "tool_cache_lookups_total",
    "Tool discovery cache lookups",
    ["result"],  # hit | miss
)

# Remote tool connection status per tenant
mcp_connection_status = Gauge(
    "mcp_connection_status",
    "Remote tool connection status (0=disconnected, 1=connecting, 2=connected, 3=error)",
    ["tenant_id"],
)

# Turn outcomes
turns_total = Counter(
    "turns_total",
    "Total conversational turns",
    ["tenant_id", "outcome"],  # outcome: done | degraded
)


def get_metrics_payload() -> Tuple[bytes, str]:
    """Get Prometheus exposition bytes and content type."""
    return generate_latest(), CONTENT_TYPE_LATEST
