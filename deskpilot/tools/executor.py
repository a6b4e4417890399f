"""Tool executor boundary and the local reference executor."""

import asyncio
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from deskpilot.config import ShellToolConfig
from deskpilot.exceptions import ToolError
from deskpilot.logging import get_logger
from deskpilot.memory import MemoryStore
from deskpilot.tools.catalog import get_tool_definition
from deskpilot.tools.files import filesystem_tools
from deskpilot.tools.memory_tools import MemoryAddTool, MemorySearchTool
from deskpilot.tools.registry import Tool, ToolRegistry, ToolResult
from deskpilot.tools.shell import ExecCommandTool
from deskpilot.tools.web import HttpRequestTool

log = get_logger(__name__)


@runtime_checkable
class ToolExecutor(Protocol):
    """Runs one tool call by name."""

    async def execute(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        ...


class LocalToolExecutor:
    """Executes catalog tools on this machine through a ``ToolRegistry``.

    Tool errors (blocked, timed out, missing arguments) are returned as
    failed results rather than raised. Catalog tools without a local
    handler (clipboard, AppleScript, app control) report that they are
    not available on this host.
    """

    def __init__(
        self,
        registry: ToolRegistry | None = None,
        abort_event: asyncio.Event | None = None,
    ):
        self.registry = registry or ToolRegistry()
        self.abort_event = abort_event

    @classmethod
    def with_default_tools(
        cls,
        shell: ShellToolConfig | None = None,
        memory: MemoryStore | None = None,
        home: Path | None = None,
        abort_event: asyncio.Event | None = None,
    ) -> "LocalToolExecutor":
        """Build an executor with shell, filesystem, HTTP and memory tools."""
        shell = shell or ShellToolConfig()
        registry = ToolRegistry()
        tools: list[Tool] = [ExecCommandTool(timeout=shell.timeout, blocked=shell.blocked, home=home)]
        tools.extend(filesystem_tools(home))
        tools.append(HttpRequestTool())
        if memory is not None:
            tools.append(MemorySearchTool(memory))
            tools.append(MemoryAddTool(memory))
        for tool in tools:
            registry.register(tool)
        return cls(registry, abort_event=abort_event)

    async def execute(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        if not self.registry.has_tool(name):
            if get_tool_definition(name) is not None:
                return ToolResult(success=False, output=f"Tool '{name}' is not available on this host.")
            return ToolResult(success=False, output=f"Unknown tool: {name}")
        try:
            return await self.registry.execute(name, dict(arguments or {}), abort_event=self.abort_event)
        except ToolError as e:
            log.warning("Tool failed", tool=name, error=str(e))
            return ToolResult(success=False, output=f"Error: {e}")

    async def close(self) -> None:
        """Release HTTP clients held by registered tools."""
        for tool_name in self.registry.list_tools():
            tool = self.registry.get(tool_name)
            close = getattr(tool, "close", None)
            if close is not None:
                await close()
