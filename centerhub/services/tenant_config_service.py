"""Service to load tenant profiles from static configuration."""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from centerhub.infra.config import config
from centerhub.infra.error_handler import ConfigurationError
from centerhub.models.tenant import TenantProfile

logger = logging.getLogger(__name__)

ENV_REFERENCE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def builtin_tenant_profiles() -> Dict[str, Dict[str, Any]]:
    """Profiles used when no TENANTS_CONFIG_PATH is configured."""
    return {
        "default": {
            "tenant_id": "default",
            "display_name": "Default Center",
            "region": "co-central",
            "storage_url": config.DATABASE_URL,
            "remote_tool_endpoint": os.getenv("MCP_DEFAULT_URL"),
            "remote_tools_enabled": False,
            "fallback_enabled": True,
            "max_turns_per_day": 10000,
            "max_tokens_per_month": 1000000,
        },
        "cucuta": {
            "tenant_id": "cucuta",
            "display_name": "Cucuta Distribution Center",
            "region": "co-northeast",
            "storage_url": config.DATABASE_URL,
            "remote_tool_endpoint": os.getenv("MCP_CUCUTA_URL", "http://localhost:8083/api/mcp"),
            "remote_tools_enabled": True,
            "fallback_enabled": True,
            "max_turns_per_day": 1000,
            "max_tokens_per_month": 100000,
            "contact": {
                "phone": "+57 7 234-5678",
                "address": "Avenida 12 #34-56, Cucuta",
                "hours": "Monday to Friday: 6:00 AM - 6:00 PM",
            },
        },
    }


def expand_env(value: Any) -> Any:
    """Replace ${VAR} references in strings, recursively. Unset variables expand to ''."""
    if isinstance(value, str):
        return ENV_REFERENCE.sub(lambda m: os.getenv(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env(v) for v in value]
    return value


def load_tenant_profiles(
    path: Optional[str] = None,
    default_tenant_id: Optional[str] = None,
) -> Dict[str, TenantProfile]:
    """
    Load and validate tenant profiles.

    Args:
        path: JSON file of {tenant_id: profile}; built-in profiles when None
        default_tenant_id: Tenant that must be present (config.DEFAULT_TENANT_ID by default)

    Returns:
        Mapping of tenant_id to TenantProfile

    Raises:
        ConfigurationError: If the file is unreadable, an entry is invalid,
            or the default tenant is missing
    """
    path = path if path is not None else config.TENANTS_CONFIG_PATH
    default_tenant_id = default_tenant_id or config.DEFAULT_TENANT_ID

    if path:
        try:
            raw = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read tenant profiles from {path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Tenant profiles file {path} must contain a JSON object")
    else:
        raw = builtin_tenant_profiles()

    profiles: Dict[str, TenantProfile] = {}
    for tenant_id, entry in expand_env(raw).items():
        if not isinstance(entry, dict):
            raise ConfigurationError(f"Tenant profile {tenant_id} must be an object")
        entry.setdefault("tenant_id", tenant_id)
        if entry["tenant_id"] != tenant_id:
            raise ConfigurationError(f"Tenant profile key {tenant_id} does not match tenant_id {entry['tenant_id']}")
        if not entry.get("remote_tool_endpoint"):
            entry["remote_tool_endpoint"] = None
        try:
            profiles[tenant_id] = TenantProfile(**entry)
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid tenant profile {tenant_id}: {e}") from e

        profile = profiles[tenant_id]
        if profile.remote_tools_enabled and not profile.remote_tool_endpoint:
            raise ConfigurationError(f"Tenant {tenant_id} enables remote tools without an endpoint")

    if default_tenant_id not in profiles:
        raise ConfigurationError(f"Default tenant {default_tenant_id} has no profile")

    logger.info(f"Loaded {len(profiles)} tenant profiles (default: {default_tenant_id})")
    return profiles
