"""Resolve which provider and model string serve a completion call."""

from dataclasses import dataclass

from deskpilot.config import AIConfig

PROVIDER_FALLBACK_ORDER: tuple[str, ...] = ("openai", "anthropic", "openai-compatible", "ollama")

PROVIDER_LABELS = {
    "openai": "OpenAI",
    "anthropic": "Anthropic",
    "openai-compatible": "OpenAI-Compatible",
    "ollama": "Ollama",
}

# Model keys as stored in settings, e.g. "openai-gpt-4o".
MODEL_TABLE: dict[str, tuple[str, str]] = {
    "openai-gpt-4o": ("openai", "gpt-4o"),
    "openai-gpt-4o-mini": ("openai", "gpt-4o-mini"),
    "anthropic-claude-haiku": ("anthropic", "claude-haiku-4-5-20251001"),
    "anthropic-claude-sonnet": ("anthropic", "claude-sonnet-4-20250514"),
    "anthropic-claude-opus": ("anthropic", "claude-opus-4-20250514"),
    "ollama-llama3": ("ollama", "llama3"),
}

# "openai-compatible-" must be tried before "openai-".
_PREFIXES: tuple[tuple[str, str], ...] = (
    ("openai-compatible-", "openai-compatible"),
    ("openai-", "openai"),
    ("anthropic-", "anthropic"),
    ("ollama-", "ollama"),
)


@dataclass(frozen=True)
class ModelRoute:
    """Resolved backend and model string for one completion call."""

    provider: str
    model_id: str


def provider_label(provider: str) -> str:
    return PROVIDER_LABELS.get(provider, provider)


def has_provider_credentials(provider: str, config: AIConfig) -> bool:
    """Whether ``config`` holds enough credentials to call ``provider``."""
    if provider == "openai":
        return bool(config.openai_api_key)
    if provider == "anthropic":
        return bool(config.anthropic_api_key)
    if provider == "openai-compatible":
        return bool(config.openai_compatible_api_key and config.openai_compatible_base_url)
    if provider == "ollama":
        return bool(config.ollama_base_url)
    return False


def _provider_default(provider: str, config: AIConfig) -> ModelRoute:
    if provider == "anthropic":
        return ModelRoute("anthropic", "claude-haiku-4-5-20251001")
    if provider == "ollama":
        return ModelRoute("ollama", "llama3")
    if provider == "openai-compatible":
        return ModelRoute("openai-compatible", config.openai_compatible_model.strip() or "gpt-4o")
    return ModelRoute("openai", "gpt-4o-mini")


def _route_for_key(model_key: str, config: AIConfig) -> ModelRoute:
    if model_key in MODEL_TABLE:
        provider, model_id = MODEL_TABLE[model_key]
        return ModelRoute(provider, model_id)
    for prefix, provider in _PREFIXES:
        if model_key.startswith(prefix):
            return ModelRoute(provider, model_key[len(prefix):])
    return ModelRoute(config.provider, model_key)


def resolve_model(model_key: str | None, config: AIConfig) -> ModelRoute:
    """Route an explicit model key, else the default model, else the provider default."""
    key = str(model_key or "").strip()
    if key:
        return _route_for_key(key, config)
    default_key = config.default_model.strip()
    if default_key:
        return _route_for_key(default_key, config)
    return _provider_default(config.provider, config)


def best_model_for_provider(provider: str, config: AIConfig) -> ModelRoute:
    """Most capable tool-calling model per provider."""
    if provider == "openai":
        return ModelRoute("openai", "gpt-4o")
    if provider == "anthropic":
        return ModelRoute("anthropic", "claude-opus-4-20250514")
    if provider == "openai-compatible":
        return ModelRoute("openai-compatible", config.openai_compatible_model.strip() or "gpt-4o")
    if provider == "ollama":
        configured = config.default_model.strip()
        if configured.startswith("ollama-"):
            return ModelRoute("ollama", configured[len("ollama-"):])
        return ModelRoute("ollama", "llama3.2")
    return resolve_model(None, config)


def resolve_best_route(config: AIConfig) -> ModelRoute:
    """Prefer the selected provider, then any credentialed provider."""
    if has_provider_credentials(config.provider, config):
        return best_model_for_provider(config.provider, config)
    for provider in PROVIDER_FALLBACK_ORDER:
        if has_provider_credentials(provider, config):
            return best_model_for_provider(provider, config)
    return resolve_model(None, config)


def resolve_compatible_chat_url(base_url: str) -> str:
    """Chat completions URL for an OpenAI-compatible base, adding ``/v1`` if missing."""
    clean = str(base_url or "").strip().rstrip("/")
    if clean.endswith("/v1"):
        return f"{clean}/chat/completions"
    return f"{clean}/v1/chat/completions"
