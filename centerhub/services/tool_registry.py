"""Tool registry: internal tools and catalog merging."""

from typing import List

from centerhub.models.tool import ToolDescriptor, ToolOrigin


INTERNAL_TOOLS = [
    ToolDescriptor(
        name="get_previous_tool_calls",
        description=(
            "Look up a previous successful call of a tool in this conversation with the same "
            "arguments. Returns the earlier result if one exists."
        ),
        parameters_schema={
            "type": "object",
            "properties": {
                "tool_name": {"type": "string", "description": "Name of the tool that was called"},
                "arguments": {"type": "object", "description": "Arguments of the earlier call"},
            },
            "required": ["tool_name"],
        },
        origin=ToolOrigin.INTERNAL,
    ),
    ToolDescriptor(
        name="describe_tenant",
        description="Describe the distribution center serving this conversation and which tools it offers",
        parameters_schema={"type": "object", "properties": {}},
        origin=ToolOrigin.INTERNAL,
    ),
]


def get_internal_tools() -> List[ToolDescriptor]:
    """Internal tools, available to every tenant."""
    return list(INTERNAL_TOOLS)


def merge_catalogs(internal: List[ToolDescriptor], remote: List[ToolDescriptor]) -> List[ToolDescriptor]:
    """
    Union of internal and remote tools.

    Internal tools win on name conflicts; order is internal first, then remote
    in the order advertised.
    """
    names = {tool.name for tool in internal}
    merged = list(internal)
    for tool in remote:
        if tool.name not in names:
            names.add(tool.name)
            merged.append(tool)
    return merged
