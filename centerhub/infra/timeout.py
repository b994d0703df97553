"""Timeout configuration for boundary calls."""

from centerhub.infra.config import config


# Timeout configurations (seconds)
HANDSHAKE_TIMEOUT = 5  # remote tool endpoint health probe
DISCOVERY_TIMEOUT = 10  # tools/list
TOOL_EXECUTION_TIMEOUT = 30  # tools/call
STORAGE_HEALTH_TIMEOUT = 5  # SELECT 1 during tenant health checks
LLM_CALL_TIMEOUT = config.LLM_CALL_TIMEOUT  # per inference call, counts as one attempt
