"""Tool catalog, schema translation and local execution."""

from deskpilot.tools.catalog import (
    TOOL_DEFINITIONS,
    ToolDefinition,
    ToolParameter,
    get_tool_definition,
    requires_confirmation,
    resolve_enabled_tools,
)
from deskpilot.tools.schema import to_anthropic_tools, to_openai_tools

__all__ = [
    "TOOL_DEFINITIONS",
    "ToolDefinition",
    "ToolParameter",
    "get_tool_definition",
    "requires_confirmation",
    "resolve_enabled_tools",
    "to_anthropic_tools",
    "to_openai_tools",
]
