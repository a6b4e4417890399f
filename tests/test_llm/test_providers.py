import json

import httpx
import pytest

from deskpilot.exceptions import LLMAPIError
from deskpilot.llm import (
    AnthropicProvider,
    OllamaProvider,
    OpenAICompatibleProvider,
    OpenAIProvider,
    RetryPolicy,
)
from deskpilot.llm.anthropic import convert_messages as anthropic_messages
from deskpilot.llm.types import Message, ToolCall
from deskpilot.tools.catalog import get_tool_definition


class Recorder:
    """MockTransport handler that records requests and replays responses."""

    def __init__(self, *responses: httpx.Response):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)

    def body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


async def _no_sleep(_delay: float) -> None:
    return None


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


TOOLS = [get_tool_definition("read_dir")]
MESSAGES = [Message(role="user", content="list my desktop")]


@pytest.mark.asyncio
async def test_openai_request_shape_and_tool_call_parsing():
    handler = Recorder(
        httpx.Response(
            200,
            json={
                "model": "gpt-4o",
                "choices": [
                    {
                        "message": {
                            "content": None,
                            "tool_calls": [
                                {
                                    "id": "call_1",
                                    "type": "function",
                                    "function": {"name": "read_dir", "arguments": '{"path": "~/Desktop"}'},
                                }
                            ],
                        }
                    }
                ],
                "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
            },
        )
    )
    provider = OpenAIProvider(model="gpt-4o", api_key="sk-test", client=_client(handler))

    response = await provider.complete("system text", MESSAGES, TOOLS)

    request = handler.requests[0]
    assert str(request.url) == "https://api.openai.com/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer sk-test"
    body = handler.body()
    assert body["messages"][0] == {"role": "system", "content": "system text"}
    assert body["parallel_tool_calls"] is False
    assert body["tools"][0]["function"]["name"] == "read_dir"
    assert response.tool_calls[0].arguments == {"path": "~/Desktop"}
    assert response.usage["total_tokens"] == 15


@pytest.mark.asyncio
async def test_openai_omits_parallel_flag_without_tools():
    handler = Recorder(httpx.Response(200, json={"choices": [{"message": {"content": "hi"}}]}))
    provider = OpenAIProvider(api_key="sk", client=_client(handler))

    response = await provider.complete("sys", MESSAGES, [])

    assert "parallel_tool_calls" not in handler.body()
    assert "tools" not in handler.body()
    assert response.content == "hi"


@pytest.mark.asyncio
async def test_openai_serialises_tool_call_arguments_as_json_strings():
    handler = Recorder(httpx.Response(200, json={"choices": [{"message": {"content": "done"}}]}))
    provider = OpenAIProvider(api_key="sk", client=_client(handler))
    history = [
        Message(role="user", content="go"),
        Message(role="assistant", content="", tool_calls=[ToolCall("c1", "read_dir", {"path": "~"})]),
        Message(role="tool", content="a\nb", tool_call_id="c1", name="read_dir"),
    ]

    await provider.complete("sys", history, TOOLS)

    sent = handler.body()["messages"]
    assert sent[2]["tool_calls"][0]["function"]["arguments"] == '{"path": "~"}'
    assert sent[3]["tool_call_id"] == "c1"


@pytest.mark.asyncio
async def test_compatible_provider_inserts_v1_segment():
    handler = Recorder(httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]}))
    provider = OpenAICompatibleProvider(
        model="llama-3.3-70b",
        base_url="https://api.groq.com/openai/",
        api_key="gsk",
        client=_client(handler),
    )

    await provider.complete("sys", MESSAGES, TOOLS)

    assert str(handler.requests[0].url) == "https://api.groq.com/openai/v1/chat/completions"
    assert handler.body()["parallel_tool_calls"] is False


@pytest.mark.asyncio
async def test_compatible_provider_recovers_malformed_tool_call():
    error_body = {
        "error": {
            "code": "tool_use_failed",
            "message": "Failed to call a function.",
            "failed_generation": '<function=read_dir>{"~/Downloads"}</function>',
        }
    }
    handler = Recorder(httpx.Response(400, json=error_body))
    provider = OpenAICompatibleProvider(
        model="llama", base_url="https://example.test/v1", api_key="k", client=_client(handler)
    )

    response = await provider.complete("sys", MESSAGES, TOOLS)

    assert len(handler.requests) == 1
    assert response.tool_calls[0].name == "read_dir"
    assert response.tool_calls[0].arguments == {"path": "~/Downloads"}


@pytest.mark.asyncio
async def test_anthropic_request_shape_and_parsing():
    handler = Recorder(
        httpx.Response(
            200,
            json={
                "model": "claude-opus-4-20250514",
                "content": [
                    {"type": "text", "text": "Let me look."},
                    {"type": "tool_use", "id": "toolu_1", "name": "read_dir", "input": {"path": "~"}},
                ],
                "usage": {"input_tokens": 7, "output_tokens": 3},
            },
        )
    )
    provider = AnthropicProvider(api_key="ak", client=_client(handler))

    response = await provider.complete("sys prompt", MESSAGES, TOOLS)

    request = handler.requests[0]
    assert str(request.url) == "https://api.anthropic.com/v1/messages"
    assert request.headers["x-api-key"] == "ak"
    assert request.headers["anthropic-version"] == "2023-06-01"
    body = handler.body()
    assert body["system"] == "sys prompt"
    assert body["max_tokens"] == 4096
    assert body["tools"][0]["input_schema"]["required"] == ["path"]
    assert response.content == "Let me look."
    assert response.tool_calls[0].id == "toolu_1"
    assert response.usage["total_tokens"] == 10


def test_anthropic_groups_consecutive_tool_results():
    history = [
        Message(role="user", content="go"),
        Message(
            role="assistant",
            content="",
            tool_calls=[ToolCall("t1", "read_dir", {"path": "~"}), ToolCall("t2", "path_info", {"path": "~"})],
        ),
        Message(role="tool", content="one", tool_call_id="t1", name="read_dir"),
        Message(role="tool", content="two", tool_call_id="t2", name="path_info"),
    ]

    converted = anthropic_messages(history)

    assert len(converted) == 3
    assert [block["type"] for block in converted[1]["content"]] == ["tool_use", "tool_use"]
    assert converted[2]["role"] == "user"
    assert [block["tool_use_id"] for block in converted[2]["content"]] == ["t1", "t2"]


@pytest.mark.asyncio
async def test_anthropic_overloaded_is_retried():
    overloaded = {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}
    handler = Recorder(
        httpx.Response(529, json=overloaded),
        httpx.Response(200, json={"content": [{"type": "text", "text": "fine"}]}),
    )
    provider = AnthropicProvider(
        api_key="ak",
        client=_client(handler),
        retry_policy=RetryPolicy(sleep=_no_sleep),
    )

    response = await provider.complete("sys", MESSAGES, [])

    assert len(handler.requests) == 2
    assert response.content == "fine"


@pytest.mark.asyncio
async def test_ollama_request_shape_and_native_arguments():
    handler = Recorder(
        httpx.Response(
            200,
            json={
                "message": {
                    "role": "assistant",
                    "content": "",
                    "tool_calls": [{"function": {"name": "read_dir", "arguments": {"path": "~"}}}],
                },
                "prompt_eval_count": 4,
                "eval_count": 2,
            },
        )
    )
    provider = OllamaProvider(model="llama3", base_url="http://localhost:11434", client=_client(handler))
    history = [
        Message(role="user", content="go"),
        Message(role="assistant", content="", tool_calls=[ToolCall("x", "read_dir", {"path": "/"})]),
        Message(role="tool", content="bin", tool_call_id="x", name="read_dir"),
    ]

    response = await provider.complete("sys", history, TOOLS)

    assert str(handler.requests[0].url) == "http://localhost:11434/api/chat"
    body = handler.body()
    assert body["stream"] is False
    assert body["messages"][0] == {"role": "system", "content": "sys"}
    assert body["messages"][2]["tool_calls"][0]["function"]["arguments"] == {"path": "/"}
    assert body["messages"][3]["tool_name"] == "read_dir"
    assert response.tool_calls[0].name == "read_dir"
    assert response.tool_calls[0].id.startswith("ollama_call_")


@pytest.mark.asyncio
async def test_failure_after_retries_raises_classified_error():
    handler = Recorder(httpx.Response(401, json={"error": {"code": "invalid_api_key", "message": "bad key"}}))
    provider = OpenAIProvider(api_key="sk", client=_client(handler))

    with pytest.raises(LLMAPIError) as exc_info:
        await provider.complete("sys", MESSAGES, TOOLS)

    assert exc_info.value.kind == "invalid_key"
    assert exc_info.value.status_code == 401
    assert len(handler.requests) == 1


@pytest.mark.asyncio
async def test_empty_choices_is_reported_as_empty_response():
    handler = Recorder(httpx.Response(200, json={"choices": []}))
    provider = OpenAIProvider(api_key="sk", client=_client(handler))

    with pytest.raises(LLMAPIError) as exc_info:
        await provider.complete("sys", MESSAGES, [])

    assert exc_info.value.kind == "empty_response"


@pytest.mark.asyncio
async def test_openai_streaming_yields_deltas():
    stream_body = (
        'data: {"choices":[{"delta":{"content":"Hi"}}]}\n\n'
        'data: {"choices":[{"delta":{"content":" there"}}]}\n\n'
        "data: [DONE]\n\n"
    )
    handler = Recorder(httpx.Response(200, content=stream_body.encode()))
    provider = OpenAIProvider(api_key="sk", client=_client(handler))

    fragments = [chunk async for chunk in provider.complete_streaming("sys", MESSAGES)]

    assert fragments == ["Hi", " there"]
    assert handler.body()["stream"] is True


@pytest.mark.asyncio
async def test_ollama_streaming_yields_ndjson_chunks():
    stream_body = '{"message":{"content":"a"}}\n{"message":{"content":"b"},"done":true}\n'
    handler = Recorder(httpx.Response(200, content=stream_body.encode()))
    provider = OllamaProvider(model="llama3", client=_client(handler))

    fragments = [chunk async for chunk in provider.complete_streaming("sys", MESSAGES)]

    assert fragments == ["a", "b"]
