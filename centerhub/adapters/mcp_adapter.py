"""Translation between remote tool descriptors and inference function-calling schemas."""

import json
import logging
import re
import secrets
import time
from typing import Any, Dict, List, Optional

from centerhub.adapters.inference_client import FunctionCall
from centerhub.models.tool import ToolDescriptor, ToolInvocation, ToolInvocationResult

logger = logging.getLogger(__name__)

TOOL_NAME_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

# Property keywords accepted by the inference services
ALLOWED_PROPERTY_FIELDS = (
    "type", "description", "enum", "pattern", "minimum", "maximum",
    "minLength", "maxLength", "items", "properties", "required", "default",
)


class ToolSchemaAdapter:
    """Stateless translator. Never raises on malformed input."""

    def validate(self, descriptor: ToolDescriptor) -> bool:
        """Name must match the identifier grammar and description must be non-empty."""
        if not descriptor.name or not TOOL_NAME_PATTERN.match(descriptor.name):
            logger.warning(f"Dropping tool with invalid name: {descriptor.name!r}")
            return False
        if not descriptor.description or not descriptor.description.strip():
            logger.warning(f"Dropping tool '{descriptor.name}' without description")
            return False
        return True

    def filter_valid(self, descriptors: List[ToolDescriptor]) -> List[ToolDescriptor]:
        return [d for d in descriptors if self.validate(d)]

    def to_external_schema(self, descriptors: List[ToolDescriptor]) -> List[Dict[str, Any]]:
        """
        Convert descriptors to function declarations.

        Args:
            descriptors: Tool descriptors of any origin

        Returns:
            List of {name, description, parameters} dicts, invalid descriptors dropped
        """
        schemas = []
        for descriptor in self.filter_valid(descriptors):
            schemas.append({
                "name": descriptor.name,
                "description": descriptor.description,
                "parameters": self._convert_parameters(descriptor.parameters_schema),
            })
        return schemas

    def _convert_parameters(self, parameters: Any) -> Dict[str, Any]:
        if not isinstance(parameters, dict):
            return {"type": "object", "properties": {}, "required": []}

        properties = parameters.get("properties")
        required = parameters.get("required")
        return {
            "type": "object",
            "properties": self._clean_properties(properties if isinstance(properties, dict) else {}),
            "required": [r for r in required if isinstance(r, str)] if isinstance(required, list) else [],
        }

    def _clean_properties(self, properties: Dict[str, Any]) -> Dict[str, Any]:
        cleaned = {}
        for key, value in properties.items():
            if isinstance(value, dict):
                cleaned[key] = self._clean_property(value)
            else:
                cleaned[key] = value
        return cleaned

    def _clean_property(self, value: Dict[str, Any]) -> Dict[str, Any]:
        cleaned = {field: value[field] for field in ALLOWED_PROPERTY_FIELDS if field in value}

        # Nested schemas get the same treatment
        if isinstance(cleaned.get("properties"), dict):
            cleaned["properties"] = self._clean_properties(cleaned["properties"])
        if isinstance(cleaned.get("items"), dict):
            cleaned["items"] = self._clean_property(cleaned["items"])

        notes = []
        enum_notes = self._format_enum_descriptions(value.get("enumDescriptions"))
        if enum_notes:
            notes.append("Available options:\n" + enum_notes)
        examples = value.get("examples")
        if isinstance(examples, list) and examples:
            notes.append("Examples: " + ", ".join(json.dumps(e, ensure_ascii=False) for e in examples))
        elif "example" in value:
            notes.append("Example: " + json.dumps(value["example"], ensure_ascii=False))

        if notes:
            description = cleaned.get("description")
            parts = [description] if description else []
            cleaned["description"] = "\n\n".join(parts + notes)
        return cleaned

    def _format_enum_descriptions(self, enum_descriptions: Any) -> Optional[str]:
        if isinstance(enum_descriptions, dict) and enum_descriptions:
            return "\n".join(f"- {key}: {desc}" for key, desc in enum_descriptions.items())
        if isinstance(enum_descriptions, list) and enum_descriptions:
            return "\n".join(f"- {desc}" for desc in enum_descriptions)
        return None

    def from_external_call(
        self,
        call: FunctionCall,
        tenant_id: str,
        conversation_id: Optional[str] = None,
    ) -> ToolInvocation:
        """Build a ToolInvocation from a proposed function call."""
        arguments = call.args
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments) if arguments.strip() else {}
            except json.JSONDecodeError:
                logger.warning(f"Undecodable arguments for {call.name}: {arguments[:100]}")
                arguments = {}
        if not isinstance(arguments, dict):
            arguments = {}

        return ToolInvocation(
            call_id=call.id or self.generate_call_id(),
            tool_name=call.name,
            arguments=arguments,
            tenant_id=tenant_id,
            conversation_id=conversation_id,
        )

    def to_external_result(self, result: ToolInvocationResult) -> Dict[str, Any]:
        """Map a result to a function response: verbatim payload or {error: message}."""
        if result.success:
            response = result.payload
        else:
            response = {"error": result.error or "Tool call failed"}
        return {
            "name": result.tool_name,
            "call_id": result.call_id,
            "response": response,
        }

    @staticmethod
    def generate_call_id() -> str:
        return f"call_{time.monotonic_ns()}_{secrets.token_hex(4)}"


tool_schema_adapter = ToolSchemaAdapter()
