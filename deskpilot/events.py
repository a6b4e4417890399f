"""Events emitted by an agent run and its final result."""

from dataclasses import dataclass
from typing import Any, Callable, Literal

from pydantic import BaseModel, ConfigDict, Field

AgentEventType = Literal[
    "status",
    "thinking",
    "tool_call",
    "confirm_needed",
    "tool_result",
    "text_chunk",
    "done",
    "error",
]

AgentRunStatus = Literal["done", "error", "cancelled"]


class ToolCallInfo(BaseModel):
    """A tool call as announced to the UI."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    dangerous: bool = False
    confirmation_message: str | None = None


class ConfirmationInfo(BaseModel):
    """Pending approval for a dangerous call."""

    model_config = ConfigDict(frozen=True)

    tool_call_id: str
    tool_name: str
    message: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolResultInfo(BaseModel):
    """Outcome of one tool call."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    success: bool
    output: str
    duration_ms: int = 0


class AgentEvent(BaseModel):
    """One observable step of an agent run."""

    model_config = ConfigDict(frozen=True)

    request_id: str
    type: AgentEventType
    text: str | None = None
    status: str | None = None
    step_number: int | None = None
    tool_call: ToolCallInfo | None = None
    confirmation: ConfirmationInfo | None = None
    tool_result: ToolResultInfo | None = None
    error: str | None = None


EventSink = Callable[[AgentEvent], None]


@dataclass
class AgentLoopResult:
    """Terminal outcome of one agent run."""

    status: AgentRunStatus
    steps: int = 0
    error: str | None = None
