"""Tenant profile model and routing signals."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field


class TenantStatus(str, Enum):
    """Lifecycle status of a tenant."""
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    OFFLINE = "offline"


class DedupPolicy(str, Enum):
    """Whether a remote tool call may be answered from the ledger."""
    ALWAYS_INVOKE = "always_invoke"
    REUSE_PRIOR_SUCCESS = "reuse_prior_success"


class TenantProfile(BaseModel):
    """Static configuration of one tenant (center)."""
    tenant_id: str = Field(..., description="Tenant identifier")
    display_name: str = Field(..., description="Human-readable tenant name")
    region: Optional[str] = Field(None, description="Geographic region served")
    storage_url: str = Field(..., description="SQLAlchemy URL of the tenant's storage backend")
    llm_provider: str = Field(default="gemini", description="'gemini' | 'openai'")
    llm_model: str = Field(default="gemini-2.0-flash", description="Model name for the provider")
    remote_tool_endpoint: Optional[str] = Field(None, description="JSON-RPC endpoint of the remote tool server")
    remote_tools_enabled: bool = Field(default=False)
    fallback_enabled: bool = Field(default=True)
    max_turns_per_day: int = Field(default=1000, description="Enforced by the billing collaborator")
    max_tokens_per_month: int = Field(default=1_000_000, description="Enforced by the billing collaborator")
    dedup_policy: DedupPolicy = Field(default=DedupPolicy.ALWAYS_INVOKE)
    dedup_overrides: Dict[str, DedupPolicy] = Field(
        default_factory=dict,
        description="Per-tool policy overriding dedup_policy"
    )
    contact: Dict[str, str] = Field(
        default_factory=dict,
        description="Contact data (phone, address, hours) used by the fallback contact tool"
    )
    status: TenantStatus = Field(default=TenantStatus.ACTIVE)

    def dedup_policy_for(self, tool_name: str) -> DedupPolicy:
        return self.dedup_overrides.get(tool_name, self.dedup_policy)


@dataclass
class RoutingSignals:
    """Signals available to resolve the tenant of an inbound request."""
    tenant_id: Optional[str] = None  # explicit routing header
    identity_tenant_id: Optional[str] = None  # from the authenticated caller's profile
    client_ip: Optional[str] = None  # geolocation input
    query_tenant_id: Optional[str] = None  # query-string parameter
