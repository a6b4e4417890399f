"""Configuration management for Deskpilot."""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


# Paths
DEFAULT_CONFIG_PATH = Path("~/.deskpilot/config.yaml").expanduser()
DEFAULT_TASKS_PATH = Path("~/.deskpilot/agent-tasks.json").expanduser()
LOCAL_CONFIG_FILENAME = "config.yaml"

ProviderName = Literal["openai", "anthropic", "ollama", "openai-compatible"]
AccessLevel = Literal["safe", "power", "ultimate"]


class AIConfig(BaseModel):
    """Provider selection and per-provider credentials."""

    provider: ProviderName = "openai"
    default_model: str = ""
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    anthropic_api_key: str = ""
    anthropic_base_url: str = "https://api.anthropic.com"
    ollama_base_url: str = ""
    openai_compatible_base_url: str = ""
    openai_compatible_api_key: str = ""
    openai_compatible_model: str = ""
    temperature: float = 0.7
    max_tokens: int = 4096
    request_timeout: float = 120.0


class AgentConfig(BaseModel):
    """Agent policy: access level, tool categories and loop limits."""

    access_level: AccessLevel = "power"
    soul_prompt: str = ""
    personality_prompt: str = ""
    personality_preset: Literal["balanced", "operator", "builder", "analyst"] = "balanced"
    enabled_skills: list[str] = Field(
        default_factory=lambda: ["organize", "cleanup", "coding", "research"]
    )
    custom_skills: list[str] = Field(default_factory=list)
    adaptive_learning: bool = True
    auto_recover: bool = True
    auto_select_best_model: bool = True
    enabled_tool_categories: list[str] = Field(
        default_factory=lambda: [
            "shell",
            "filesystem",
            "clipboard",
            "applescript",
            "http",
            "app_control",
            "memory",
        ]
    )
    auto_approve_categories: list[str] = Field(
        default_factory=lambda: ["clipboard", "memory", "http", "app_control"]
    )
    max_steps: int = 30
    recover_delay_seconds: float = 1.2
    tool_output_limit: int = 4000
    memory_context_limit: int = 6


class ShellToolConfig(BaseModel):
    """Local shell executor configuration."""

    timeout: int = 30
    blocked: list[str] = [
        "rm -rf /",
        "mkfs",
        ":(){:|:&};:",
    ]


class TasksConfig(BaseModel):
    """Task history configuration."""

    enabled: bool = True
    path: str = str(DEFAULT_TASKS_PATH)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "console"


class Config(BaseSettings):
    """Main configuration for Deskpilot."""

    ai: AIConfig = Field(default_factory=AIConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    shell: ShellToolConfig = Field(default_factory=ShellToolConfig)
    tasks: TasksConfig = Field(default_factory=TasksConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="DESKPILOT_",
        env_file=".env",
        env_nested_delimiter="__",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Earlier sources win: env, then .env, then YAML passed as init kwargs.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve default config path with local-first precedence."""
        local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
        if local_path.exists():
            return local_path
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def load(cls) -> "Config":
        """Load the YAML config with ``DESKPILOT_*`` env vars and ``.env`` overriding it."""
        return cls.from_yaml()

    def save(self, path: Path | str | None = None) -> None:
        """Save configuration to YAML file."""
        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(exclude_none=True)

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)


# Global config instance, used by the CLI entry point only.
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
