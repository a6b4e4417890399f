"""OpenAI chat completions provider."""

import json
from functools import partial
from typing import Any, AsyncIterator, Callable

from deskpilot.llm.base import HTTPProvider
from deskpilot.llm.errors import ApiFailure
from deskpilot.llm.recovery import parse_arguments
from deskpilot.llm.streaming import iter_sse
from deskpilot.llm.types import LLMResponse, Message, ToolCall
from deskpilot.tools.catalog import ToolDefinition
from deskpilot.tools.schema import to_openai_tools

OPENAI_BASE_URL = "https://api.openai.com/v1"


def convert_messages(messages: list[Message]) -> list[dict[str, Any]]:
    """Convert messages to the OpenAI chat format (arguments as JSON strings)."""
    result: list[dict[str, Any]] = []
    for msg in messages:
        entry: dict[str, Any] = {"role": msg.role, "content": msg.content or ""}
        if msg.tool_calls:
            entry["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": json.dumps(tc.arguments)},
                }
                for tc in msg.tool_calls
            ]
        if msg.tool_call_id:
            entry["tool_call_id"] = msg.tool_call_id
        if msg.name:
            entry["name"] = msg.name
        result.append(entry)
    return result


def _extract_delta(record: dict[str, Any]) -> str | None:
    return record["choices"][0]["delta"].get("content")


class OpenAIProvider(HTTPProvider):
    """OpenAI ``/chat/completions`` with bearer auth."""

    provider_name = "openai"
    label = "OpenAI"

    def __init__(self, model: str = "gpt-4o", base_url: str = OPENAI_BASE_URL, **kwargs: Any):
        super().__init__(model=model, base_url=base_url or OPENAI_BASE_URL, **kwargs)

    def _chat_url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _build_request(
        self,
        system_prompt: str,
        messages: list[Message],
        tools: list[ToolDefinition],
        stream: bool = False,
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        body: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "system", "content": system_prompt}, *convert_messages(messages)],
            "temperature": self.temperature,
        }
        if tools:
            body["tools"] = to_openai_tools(tools)
            body["parallel_tool_calls"] = False
        if stream:
            body["stream"] = True

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return self._chat_url(), headers, body

    def _parse_response(self, data: dict[str, Any]) -> LLMResponse | ApiFailure:
        choices = data.get("choices") or []
        message = choices[0].get("message") if choices and isinstance(choices[0], dict) else None
        if not isinstance(message, dict):
            return self._empty_response()

        tool_calls = []
        for tc in message.get("tool_calls") or []:
            function = tc.get("function") or {}
            tool_calls.append(
                ToolCall(
                    id=str(tc.get("id") or ""),
                    name=str(function.get("name") or ""),
                    arguments=parse_arguments(function.get("arguments")),
                )
            )

        usage = data.get("usage") or {}
        return LLMResponse(
            content=message.get("content") or "",
            tool_calls=tool_calls,
            model=str(data.get("model") or self.model),
            usage={
                "prompt_tokens": int(usage.get("prompt_tokens", 0) or 0),
                "completion_tokens": int(usage.get("completion_tokens", 0) or 0),
                "total_tokens": int(usage.get("total_tokens", 0) or 0),
            },
        )

    def _stream_decoder(self) -> Callable[[AsyncIterator[bytes]], AsyncIterator[str]]:
        return partial(iter_sse, extract=_extract_delta)
