"""Anthropic Messages API provider."""

from functools import partial
from typing import Any, AsyncIterator, Callable

from deskpilot.llm.base import HTTPProvider
from deskpilot.llm.errors import ApiFailure, GENERIC
from deskpilot.llm.recovery import parse_arguments
from deskpilot.llm.streaming import iter_sse
from deskpilot.llm.types import LLMResponse, Message, ToolCall
from deskpilot.tools.catalog import ToolDefinition
from deskpilot.tools.schema import to_anthropic_tools

ANTHROPIC_BASE_URL = "https://api.anthropic.com"
ANTHROPIC_VERSION = "2023-06-01"


def convert_messages(messages: list[Message]) -> list[dict[str, Any]]:
    """Convert messages to Anthropic content blocks.

    The system prompt travels separately, assistant tool calls become
    ``tool_use`` blocks and consecutive tool results are grouped into a single
    user message of ``tool_result`` blocks.
    """
    result: list[dict[str, Any]] = []
    for msg in messages:
        if msg.role == "system":
            continue

        if msg.role == "assistant" and msg.tool_calls:
            content: list[dict[str, Any]] = []
            if msg.content:
                content.append({"type": "text", "text": msg.content})
            for tc in msg.tool_calls:
                content.append(
                    {
                        "type": "tool_use",
                        "id": tc.id,
                        "name": tc.name,
                        "input": parse_arguments(tc.arguments),
                    }
                )
            result.append({"role": "assistant", "content": content})
        elif msg.role == "tool":
            block = {
                "type": "tool_result",
                "tool_use_id": msg.tool_call_id,
                "content": msg.content or "",
            }
            last = result[-1] if result else None
            if (
                last is not None
                and last["role"] == "user"
                and isinstance(last["content"], list)
                and last["content"]
                and last["content"][0].get("type") == "tool_result"
            ):
                last["content"].append(block)
            else:
                result.append({"role": "user", "content": [block]})
        else:
            result.append({"role": msg.role, "content": msg.content or ""})
    return result


def _extract_delta(record: dict[str, Any]) -> str | None:
    if record.get("type") != "content_block_delta":
        return None
    return record["delta"].get("text")


class AnthropicProvider(HTTPProvider):
    """Anthropic ``/v1/messages`` with ``x-api-key`` auth."""

    provider_name = "anthropic"
    label = "Anthropic"

    def __init__(
        self,
        model: str = "claude-opus-4-20250514",
        base_url: str = ANTHROPIC_BASE_URL,
        **kwargs: Any,
    ):
        super().__init__(model=model, base_url=base_url or ANTHROPIC_BASE_URL, **kwargs)

    def _build_request(
        self,
        system_prompt: str,
        messages: list[Message],
        tools: list[ToolDefinition],
        stream: bool = False,
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        body: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": convert_messages(messages),
            "temperature": self.temperature,
        }
        if system_prompt:
            body["system"] = system_prompt
        if tools:
            body["tools"] = to_anthropic_tools(tools)
        if stream:
            body["stream"] = True

        headers = {
            "Content-Type": "application/json",
            "x-api-key": self.api_key or "",
            "anthropic-version": ANTHROPIC_VERSION,
        }
        return f"{self.base_url}/v1/messages", headers, body

    def _parse_response(self, data: dict[str, Any]) -> LLMResponse | ApiFailure:
        error = data.get("error")
        if isinstance(error, dict):
            return ApiFailure(
                kind=GENERIC,
                message=str(error.get("message") or "Unknown error from Anthropic"),
                retryable=error.get("type") == "overloaded_error",
                body=data,
            )

        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        for block in data.get("content") or []:
            block_type = block.get("type")
            if block_type == "text":
                text_parts.append(str(block.get("text") or ""))
            elif block_type == "tool_use":
                tool_calls.append(
                    ToolCall(
                        id=str(block.get("id") or ""),
                        name=str(block.get("name") or ""),
                        arguments=parse_arguments(block.get("input")),
                    )
                )

        usage = data.get("usage") or {}
        input_tokens = int(usage.get("input_tokens", 0) or 0)
        output_tokens = int(usage.get("output_tokens", 0) or 0)
        return LLMResponse(
            content="".join(text_parts),
            tool_calls=tool_calls,
            model=str(data.get("model") or self.model),
            usage={
                "prompt_tokens": input_tokens,
                "completion_tokens": output_tokens,
                "total_tokens": input_tokens + output_tokens,
            },
        )

    def _stream_decoder(self) -> Callable[[AsyncIterator[bytes]], AsyncIterator[str]]:
        return partial(iter_sse, extract=_extract_delta)
