"""Convert catalog definitions into each provider's function-calling shape."""

from typing import Any, Iterable

from deskpilot.tools.catalog import ToolDefinition, ToolParameter


def _parameter_schema(param: ToolParameter) -> dict[str, Any]:
    schema: dict[str, Any] = {
        "type": param.type,
        "description": param.description,
    }
    if param.enum:
        schema["enum"] = list(param.enum)
    if param.items:
        schema["items"] = dict(param.items)
    return schema


def parameters_schema(tool: ToolDefinition) -> dict[str, Any]:
    """JSON-Schema object describing a tool's parameters."""
    return {
        "type": "object",
        "properties": {param.name: _parameter_schema(param) for param in tool.parameters},
        "required": [param.name for param in tool.parameters if param.required],
    }


def to_openai_tools(tools: Iterable[ToolDefinition]) -> list[dict[str, Any]]:
    """OpenAI / OpenAI-compatible / Ollama ``tools`` payload."""
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": parameters_schema(tool),
            },
        }
        for tool in tools
    ]


def to_anthropic_tools(tools: Iterable[ToolDefinition]) -> list[dict[str, Any]]:
    """Anthropic Messages API ``tools`` payload."""
    return [
        {
            "name": tool.name,
            "description": tool.description,
            "input_schema": parameters_schema(tool),
        }
        for tool in tools
    ]
