import httpx
import pytest

from deskpilot.config import AIConfig
from deskpilot.exceptions import ConfigurationError
from deskpilot.llm import (
    AnthropicProvider,
    OllamaProvider,
    OpenAICompatibleProvider,
    chat_completion_with_tools,
    create_provider,
    provider_for_route,
    resolve_route,
)
from deskpilot.llm.routing import (
    ModelRoute,
    has_provider_credentials,
    resolve_best_route,
    resolve_compatible_chat_url,
    resolve_model,
)
from deskpilot.llm.types import Message


def test_resolve_model_uses_table_then_prefixes():
    config = AIConfig()

    assert resolve_model("openai-gpt-4o", config) == ModelRoute("openai", "gpt-4o")
    assert resolve_model("anthropic-claude-sonnet", config) == ModelRoute("anthropic", "claude-sonnet-4-20250514")
    assert resolve_model("openai-compatible-llama-3.3-70b", config) == ModelRoute(
        "openai-compatible", "llama-3.3-70b"
    )
    assert resolve_model("ollama-qwen3:32b", config) == ModelRoute("ollama", "qwen3:32b")


def test_resolve_model_falls_back_to_default_and_provider_default():
    assert resolve_model(None, AIConfig(default_model="openai-gpt-4o")) == ModelRoute("openai", "gpt-4o")
    assert resolve_model("", AIConfig(provider="anthropic")) == ModelRoute("anthropic", "claude-haiku-4-5-20251001")
    assert resolve_model(None, AIConfig()) == ModelRoute("openai", "gpt-4o-mini")
    assert resolve_model("my-model", AIConfig(provider="ollama")) == ModelRoute("ollama", "my-model")


def test_credentials_per_provider():
    assert not has_provider_credentials("openai", AIConfig())
    assert has_provider_credentials("openai", AIConfig(openai_api_key="sk"))
    assert not has_provider_credentials("openai-compatible", AIConfig(openai_compatible_api_key="k"))
    assert has_provider_credentials(
        "openai-compatible",
        AIConfig(openai_compatible_api_key="k", openai_compatible_base_url="https://x.test"),
    )
    assert has_provider_credentials("ollama", AIConfig(ollama_base_url="http://localhost:11434"))
    assert not has_provider_credentials("unknown", AIConfig(openai_api_key="sk"))


def test_best_route_prefers_selected_provider_then_fallback_order():
    selected = AIConfig(provider="anthropic", anthropic_api_key="ak", openai_api_key="sk")
    assert resolve_best_route(selected) == ModelRoute("anthropic", "claude-opus-4-20250514")

    fallback = AIConfig(provider="openai", anthropic_api_key="ak")
    assert resolve_best_route(fallback) == ModelRoute("anthropic", "claude-opus-4-20250514")

    ollama = AIConfig(provider="ollama", ollama_base_url="http://h:11434", default_model="ollama-mistral")
    assert resolve_best_route(ollama) == ModelRoute("ollama", "mistral")


@pytest.mark.parametrize(
    ("base", "expected"),
    [
        ("https://api.groq.com/openai", "https://api.groq.com/openai/v1/chat/completions"),
        ("https://api.together.xyz/v1/", "https://api.together.xyz/v1/chat/completions"),
        ("  http://localhost:8000  ", "http://localhost:8000/v1/chat/completions"),
    ],
)
def test_compatible_chat_url(base, expected):
    assert resolve_compatible_chat_url(base) == expected


def test_resolve_route_requires_credentials():
    with pytest.raises(ConfigurationError, match="No credentials configured for provider: openai"):
        resolve_route(AIConfig())

    route = resolve_route(AIConfig(openai_api_key="sk"), auto_select_best_model=False)
    assert route == ModelRoute("openai", "gpt-4o-mini")


def test_create_provider_rejects_unknown_and_missing_base_url():
    with pytest.raises(ValueError, match="Unsupported provider for agent: gemini"):
        create_provider("gemini", "x")
    with pytest.raises(ConfigurationError):
        create_provider("openai-compatible", "llama")


def test_provider_for_route_builds_matching_provider():
    config = AIConfig(
        anthropic_api_key="ak",
        ollama_base_url="http://box:11434",
        openai_compatible_api_key="k",
        openai_compatible_base_url="https://x.test",
    )

    anthropic = provider_for_route(ModelRoute("anthropic", "claude-x"), config)
    ollama = provider_for_route(ModelRoute("ollama", "llama3"), config)
    compatible = provider_for_route(ModelRoute("openai-compatible", "m"), config)

    assert isinstance(anthropic, AnthropicProvider)
    assert anthropic.api_key == "ak"
    assert anthropic.model == "claude-x"
    assert isinstance(ollama, OllamaProvider)
    assert ollama.base_url == "http://box:11434"
    assert isinstance(compatible, OpenAICompatibleProvider)


@pytest.mark.asyncio
async def test_chat_completion_with_tools_without_credentials():
    with pytest.raises(ConfigurationError):
        await chat_completion_with_tools(AIConfig(), "sys", [Message(role="user", content="hi")], [])


@pytest.mark.asyncio
async def test_chat_completion_with_tools_routes_to_best_model():
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append({"url": str(request.url), "body": request.content})
        return httpx.Response(200, json={"choices": [{"message": {"content": "hello"}}]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        response = await chat_completion_with_tools(
            AIConfig(openai_api_key="sk"),
            "sys",
            [Message(role="user", content="hi")],
            [],
            client=client,
        )

    assert response.content == "hello"
    assert seen[0]["url"] == "https://api.openai.com/v1/chat/completions"
    assert b'"model":"gpt-4o"' in seen[0]["body"].replace(b" ", b"")
