"""Multi-provider completion adapter."""

import asyncio

import httpx

from deskpilot.config import AIConfig
from deskpilot.exceptions import ConfigurationError
from deskpilot.llm.anthropic import AnthropicProvider
from deskpilot.llm.base import HTTPProvider, LLMProvider
from deskpilot.llm.compatible import OpenAICompatibleProvider
from deskpilot.llm.errors import ApiFailure, RetryPolicy, classify_failure, with_retry
from deskpilot.llm.ollama import OllamaProvider
from deskpilot.llm.openai import OpenAIProvider
from deskpilot.llm.routing import (
    ModelRoute,
    has_provider_credentials,
    provider_label,
    resolve_best_route,
    resolve_compatible_chat_url,
    resolve_model,
)
from deskpilot.llm.types import LLMResponse, Message, ToolCall
from deskpilot.logging import get_logger
from deskpilot.tools.catalog import ToolDefinition

log = get_logger(__name__)

_PROVIDER_CLASSES: dict[str, type[HTTPProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "ollama": OllamaProvider,
    "openai-compatible": OpenAICompatibleProvider,
}


def create_provider(
    provider: str,
    model: str,
    api_key: str | None = None,
    base_url: str | None = None,
    temperature: float = 0.7,
    max_tokens: int = 4096,
    timeout: float = 120.0,
    client: httpx.AsyncClient | None = None,
    retry_policy: RetryPolicy | None = None,
) -> HTTPProvider:
    """Create an LLM provider.

    Args:
        provider: Provider name (openai, anthropic, ollama, openai-compatible)
        model: Model name as the backend expects it
        api_key: Optional API key
        base_url: Optional base URL
        temperature: Sampling temperature
        max_tokens: Max tokens to generate
        timeout: HTTP timeout in seconds
        client: Optional shared httpx client
        retry_policy: Optional retry/backoff policy

    Returns:
        Configured provider instance
    """
    provider_cls = _PROVIDER_CLASSES.get(provider)
    if provider_cls is None:
        raise ValueError(f"Unsupported provider for agent: {provider}")
    if provider == "openai-compatible" and not base_url:
        raise ConfigurationError("OpenAI-compatible provider requires a base URL")
    kwargs = {
        "model": model,
        "api_key": api_key,
        "temperature": temperature,
        "max_tokens": max_tokens,
        "timeout": timeout,
        "client": client,
        "retry_policy": retry_policy,
    }
    if base_url:
        kwargs["base_url"] = base_url
    return provider_cls(**kwargs)


def provider_for_route(
    route: ModelRoute,
    config: AIConfig,
    client: httpx.AsyncClient | None = None,
    retry_policy: RetryPolicy | None = None,
) -> HTTPProvider:
    """Build the provider for ``route`` using credentials from ``config``."""
    credentials = {
        "openai": (config.openai_api_key, config.openai_base_url),
        "anthropic": (config.anthropic_api_key, config.anthropic_base_url),
        "ollama": (None, config.ollama_base_url),
        "openai-compatible": (config.openai_compatible_api_key, config.openai_compatible_base_url),
    }
    api_key, base_url = credentials.get(route.provider, (None, None))
    return create_provider(
        provider=route.provider,
        model=route.model_id,
        api_key=api_key,
        base_url=base_url,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        timeout=config.request_timeout,
        client=client,
        retry_policy=retry_policy,
    )


def resolve_route(config: AIConfig, auto_select_best_model: bool = True) -> ModelRoute:
    """Pick the route for the next call, validating credentials."""
    route = resolve_best_route(config) if auto_select_best_model else resolve_model(None, config)
    if not has_provider_credentials(route.provider, config):
        raise ConfigurationError(f"No credentials configured for provider: {route.provider}")
    return route


async def chat_completion_with_tools(
    config: AIConfig,
    system_prompt: str,
    messages: list[Message],
    tools: list[ToolDefinition],
    abort_event: asyncio.Event | None = None,
    auto_select_best_model: bool = True,
    client: httpx.AsyncClient | None = None,
    retry_policy: RetryPolicy | None = None,
) -> LLMResponse:
    """Send one conversation turn to the resolved backend."""
    route = resolve_route(config, auto_select_best_model)
    provider = provider_for_route(route, config, client=client, retry_policy=retry_policy)
    log.debug("Resolved model route", provider=route.provider, model=route.model_id)
    try:
        return await provider.complete(system_prompt, messages, tools, abort_event=abort_event)
    finally:
        await provider.close()


class RoutedProvider(LLMProvider):
    """Provider facade that resolves the route from ``AIConfig`` on every call."""

    def __init__(
        self,
        config: AIConfig,
        auto_select_best_model: bool = True,
        client: httpx.AsyncClient | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        self.config = config
        self.auto_select_best_model = auto_select_best_model
        self.client = client
        self.retry_policy = retry_policy

    async def complete(
        self,
        system_prompt: str,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        abort_event: asyncio.Event | None = None,
    ) -> LLMResponse:
        return await chat_completion_with_tools(
            self.config,
            system_prompt,
            messages,
            list(tools or []),
            abort_event=abort_event,
            auto_select_best_model=self.auto_select_best_model,
            client=self.client,
            retry_policy=self.retry_policy,
        )

    async def complete_streaming(
        self,
        system_prompt: str,
        messages: list[Message],
        abort_event: asyncio.Event | None = None,
    ):
        route = resolve_route(self.config, self.auto_select_best_model)
        provider = provider_for_route(route, self.config, client=self.client, retry_policy=self.retry_policy)
        try:
            async for fragment in provider.complete_streaming(system_prompt, messages, abort_event=abort_event):
                yield fragment
        finally:
            await provider.close()


__all__ = [
    "AnthropicProvider",
    "ApiFailure",
    "HTTPProvider",
    "LLMProvider",
    "LLMResponse",
    "Message",
    "ModelRoute",
    "OllamaProvider",
    "OpenAICompatibleProvider",
    "OpenAIProvider",
    "RetryPolicy",
    "RoutedProvider",
    "ToolCall",
    "chat_completion_with_tools",
    "classify_failure",
    "create_provider",
    "has_provider_credentials",
    "provider_for_route",
    "provider_label",
    "resolve_best_route",
    "resolve_compatible_chat_url",
    "resolve_model",
    "resolve_route",
    "with_retry",
]
