"""Static tools and canned responses used when a tenant's remote endpoint is unavailable."""

import logging
from typing import Dict, List, Optional

from centerhub.models.tool import ToolDescriptor, ToolInvocation, ToolInvocationResult, ToolOrigin

logger = logging.getLogger(__name__)


GENERAL_INFO_TOPICS = {
    ("delivery", "entrega"): (
        "Deliveries go through order verification, vehicle loading, route tracking "
        "and delivery confirmation."
    ),
    ("inventory", "inventario", "stock"): (
        "Inventory is managed with stock control, FIFO rotation and availability reports."
    ),
    ("route", "ruta"): (
        "Route planning weighs distance, traffic, vehicle capacity and customer time windows."
    ),
}

FALLBACK_TOOLS = [
    ToolDescriptor(
        name="general_info",
        description="General information about logistics processes (delivery, inventory, routes)",
        parameters_schema={
            "type": "object",
            "properties": {
                "topic": {"type": "string", "description": "Topic the user is asking about"},
            },
            "required": ["topic"],
        },
        origin=ToolOrigin.REMOTE,
    ),
    ToolDescriptor(
        name="tenant_contact",
        description="Contact information (phone, address, opening hours) of a distribution center",
        parameters_schema={
            "type": "object",
            "properties": {
                "tenant_id": {"type": "string", "description": "Identifier of the distribution center"},
            },
            "required": ["tenant_id"],
        },
        origin=ToolOrigin.REMOTE,
    ),
]


class FallbackToolProvider:
    """Dependency-free tools that are always available."""

    def __init__(
        self,
        contacts: Optional[Dict[str, Dict[str, str]]] = None,
        display_names: Optional[Dict[str, str]] = None,
    ):
        """
        Args:
            contacts: tenant_id -> {phone, address, hours}
            display_names: tenant_id -> human-readable name
        """
        self.contacts = {k.lower(): v for k, v in (contacts or {}).items()}
        self.display_names = display_names or {}
        self._tools = {tool.name: tool for tool in FALLBACK_TOOLS}

    def static_catalog(self) -> List[ToolDescriptor]:
        return list(self._tools.values())

    def has_fallback(self, tool_name: str) -> bool:
        return tool_name in self._tools

    def combine_with(self, remote_tools: List[ToolDescriptor]) -> List[ToolDescriptor]:
        """Remote tools plus fallback tools whose names are not already present."""
        names = {tool.name for tool in remote_tools}
        return list(remote_tools) + [tool for name, tool in self._tools.items() if name not in names]

    async def invoke(self, invocation: ToolInvocation) -> ToolInvocationResult:
        """Dispatch to a built-in responder. Never raises."""
        logger.info(f"Fallback execution of {invocation.tool_name} for {invocation.tenant_id}")

        if not self.has_fallback(invocation.tool_name):
            return ToolInvocationResult.failure(
                invocation,
                f"No fallback available for tool '{invocation.tool_name}'",
                source="fallback",
            )

        try:
            if invocation.tool_name == "general_info":
                return self._general_info(invocation)
            return self._tenant_contact(invocation)
        except Exception as e:
            logger.error(f"Fallback {invocation.tool_name} failed: {e}", exc_info=True)
            return ToolInvocationResult.failure(invocation, str(e), source="fallback")

    def _general_info(self, invocation: ToolInvocation) -> ToolInvocationResult:
        topic = str(invocation.arguments.get("topic") or "").lower()
        response = "No general information available for this topic."
        for keywords, answer in GENERAL_INFO_TOPICS.items():
            if any(keyword in topic for keyword in keywords):
                response = answer
                break
        return ToolInvocationResult.ok(invocation, {"topic": topic, "response": response}, source="fallback")

    def _tenant_contact(self, invocation: ToolInvocation) -> ToolInvocationResult:
        tenant_id = str(invocation.arguments.get("tenant_id") or invocation.tenant_id).lower()
        contact = self.contacts.get(tenant_id)
        if not contact:
            return ToolInvocationResult.ok(
                invocation,
                {
                    "tenant_id": tenant_id,
                    "contact": None,
                    "response": f"No contact information on file for {tenant_id}.",
                },
                source="fallback",
            )
        return ToolInvocationResult.ok(
            invocation,
            {"tenant_id": tenant_id, "contact": dict(contact)},
            source="fallback",
        )

    def degraded_notice(self, tenant_id: str) -> str:
        name = self.display_names.get(tenant_id, tenant_id)
        return (
            f"The specialized tools of the {name} center are currently unavailable. "
            "General information about logistics processes is still available, but for "
            "inventory, delivery scheduling or order status questions the user should "
            f"contact the {name} center directly or try again in a few minutes."
        )
