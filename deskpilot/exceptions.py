"""Custom exceptions for Deskpilot."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from deskpilot.llm.errors import ApiFailure


class DeskpilotError(Exception):
    """Base exception for Deskpilot."""

    pass


class ConfigurationError(DeskpilotError):
    """Configuration-related errors."""

    pass


class LLMError(DeskpilotError):
    """LLM-related errors."""

    pass


class LLMAPIError(LLMError):
    """A provider call failed after retries and recovery were exhausted."""

    def __init__(self, failure: "ApiFailure"):
        super().__init__(failure.message)
        self.failure = failure

    @property
    def status_code(self) -> int | None:
        return self.failure.status_code

    @property
    def kind(self) -> str:
        return self.failure.kind


class RequestAbortedError(LLMError):
    """The cancellation signal fired while a provider call was in flight."""

    def __init__(self, message: str = "Request aborted"):
        super().__init__(message)


class ToolError(DeskpilotError):
    """Tool execution errors."""

    pass


class ToolExecutionError(ToolError):
    """Tool execution failed."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class ToolNotFoundError(ToolError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool not found: {tool_name}")
        self.tool_name = tool_name


class ToolBlockedError(ToolError):
    """Tool execution blocked by policy."""

    def __init__(self, tool_name: str, reason: str):
        super().__init__(f"Tool '{tool_name}' blocked: {reason}")
        self.tool_name = tool_name
        self.reason = reason
