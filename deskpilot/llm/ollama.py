"""Ollama provider - direct HTTP calls to Ollama API."""

import uuid
from functools import partial
from typing import Any, AsyncIterator, Callable

from deskpilot.llm.base import HTTPProvider
from deskpilot.llm.errors import ApiFailure
from deskpilot.llm.recovery import parse_arguments
from deskpilot.llm.streaming import iter_ndjson
from deskpilot.llm.types import LLMResponse, Message, ToolCall
from deskpilot.tools.catalog import ToolDefinition
from deskpilot.tools.schema import to_openai_tools

OLLAMA_NATIVE_BASE_URL = "http://127.0.0.1:11434"


def _extract_chunk(record: dict[str, Any]) -> str | None:
    message = record.get("message")
    if isinstance(message, dict):
        return message.get("content")
    return record.get("response")


class OllamaProvider(HTTPProvider):
    """Direct Ollama API provider."""

    provider_name = "ollama"
    label = "Ollama"

    def __init__(
        self,
        model: str = "llama3.2",
        base_url: str = OLLAMA_NATIVE_BASE_URL,
        **kwargs: Any,
    ):
        """Initialize Ollama provider.

        Args:
            model: Ollama model name (e.g., 'llama3.2', 'qwen3:32b')
            base_url: Ollama API base URL
            **kwargs: Shared provider options (api_key, temperature, client...)
        """
        super().__init__(model=model, base_url=base_url or OLLAMA_NATIVE_BASE_URL, **kwargs)

    def _convert_messages(self, system_prompt: str, messages: list[Message]) -> list[dict[str, Any]]:
        """Convert messages to Ollama format (arguments stay native objects)."""
        result: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        for msg in messages:
            entry: dict[str, Any] = {"role": msg.role, "content": msg.content or ""}
            if msg.role == "assistant" and msg.tool_calls:
                entry["tool_calls"] = [
                    {"function": {"name": tc.name, "arguments": tc.arguments}}
                    for tc in msg.tool_calls
                ]
            elif msg.role == "tool" and msg.name:
                entry["tool_name"] = msg.name
            result.append(entry)
        return result

    def _build_request(
        self,
        system_prompt: str,
        messages: list[Message],
        tools: list[ToolDefinition],
        stream: bool = False,
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        body: dict[str, Any] = {
            "model": self.model,
            "messages": self._convert_messages(system_prompt, messages),
            "stream": stream,
            "options": {
                "temperature": self.temperature,
                "num_predict": self.max_tokens,
            },
        }
        if tools:
            body["tools"] = to_openai_tools(tools)

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return f"{self.base_url}/api/chat", headers, body

    def _parse_response(self, data: dict[str, Any]) -> LLMResponse | ApiFailure:
        message = data.get("message")
        if not isinstance(message, dict):
            return self._empty_response()

        # Ollama does not assign call ids.
        tool_calls = []
        for tc in message.get("tool_calls") or []:
            function = tc.get("function") or {}
            tool_calls.append(
                ToolCall(
                    id=f"ollama_call_{uuid.uuid4().hex[:12]}",
                    name=str(function.get("name") or ""),
                    arguments=parse_arguments(function.get("arguments")),
                )
            )

        prompt_tokens = int(data.get("prompt_eval_count", 0) or 0)
        completion_tokens = int(data.get("eval_count", 0) or 0)
        return LLMResponse(
            content=message.get("content") or "",
            tool_calls=tool_calls,
            model=self.model,
            usage={
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            },
        )

    def _stream_decoder(self) -> Callable[[AsyncIterator[bytes]], AsyncIterator[str]]:
        return partial(iter_ndjson, extract=_extract_chunk)
