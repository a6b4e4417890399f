"""Tools exposing the long-term memory store to the model."""

from typing import Any

from deskpilot.memory import MemoryStore
from deskpilot.tools.registry import Tool, ToolResult


class MemorySearchTool(Tool):
    name = "memory_search"
    required = ("query",)

    def __init__(self, memory: MemoryStore, limit: int = 6):
        self.memory = memory
        self.limit = limit

    async def execute(self, query: str = "", **kwargs: Any) -> ToolResult:
        query = str(query or "").strip()
        if not query:
            return ToolResult(success=False, output="No query provided.")
        results = await self.memory.search(query, self.limit)
        if not results:
            return ToolResult(success=True, output="No relevant memories found.")
        return ToolResult(
            success=True,
            output="\n".join(f"{i}. {text}" for i, text in enumerate(results, start=1)),
        )


class MemoryAddTool(Tool):
    name = "memory_add"
    required = ("text",)

    def __init__(self, memory: MemoryStore):
        self.memory = memory

    async def execute(self, text: str = "", **kwargs: Any) -> ToolResult:
        text = str(text or "").strip()
        if not text:
            return ToolResult(success=False, output="No text provided.")
        result = await self.memory.add(text, "agent")
        if result.success:
            return ToolResult(success=True, output="Memory saved.")
        return ToolResult(success=False, output=result.error or "Failed to save memory.")
