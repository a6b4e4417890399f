"""Provider for OpenAI-compatible endpoints (Groq, Together, OpenRouter, vLLM...)."""

from typing import Any

from deskpilot.llm.openai import OpenAIProvider
from deskpilot.llm.routing import resolve_compatible_chat_url


class OpenAICompatibleProvider(OpenAIProvider):
    """Same wire format as OpenAI against a user-supplied base URL."""

    provider_name = "openai-compatible"
    label = "OpenAI-Compatible"

    def __init__(self, model: str, base_url: str, **kwargs: Any):
        super().__init__(model=model, base_url=base_url, **kwargs)

    def _chat_url(self) -> str:
        return resolve_compatible_chat_url(self.base_url)
