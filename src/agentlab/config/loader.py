"""Configuration file loader.

Handles discovery, parsing, and merging of YAML configuration files.
"""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError

from agentlab.exceptions import ConfigurationError
from agentlab.models.config import (
    ChatSettings,
    ConnectionSettings,
    EvaluationSettings,
    LLMConfig,
    StateSettings,
)

# Pattern matches ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:-]+)(?::-([^}]*))?\}")

# Default config file names in priority order
CONFIG_FILE_NAMES = ["agentlab.yaml", ".agentlab.yaml", "agentlab.yml", ".agentlab.yml"]

LLM_COMPONENTS = ("chat", "judge", "suggestions")


@dataclass
class _ResolvedValues:
    """Mutable holder for LLM values while layers are merged."""

    provider: str
    model: str
    temperature: float
    max_tokens: int
    base_url: str | None
    api_key: str | None
    context_size: int | None
    reasoning: Literal["low", "medium", "high"] | None


class CLIOverrides(BaseModel):
    """CLI argument overrides for configuration.

    All fields are optional - only set values will override config file settings.
    """

    provider: str | None = None
    model: str | None = None
    base_url: str | None = None
    api_key: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None


class RemoteOverrides(BaseModel):
    """CLI overrides for the remote backend connection."""

    base_url: str | None = None
    api_key: str | None = None
    timeout_seconds: float | None = None


class FileConfig(BaseModel):
    """Schema for agentlab.yaml configuration file."""

    llm: LLMConfig | None = None
    chat: LLMConfig | None = None
    judge: LLMConfig | None = None
    suggestions: LLMConfig | None = None
    remote: ConnectionSettings | None = None
    evaluation: EvaluationSettings = Field(default_factory=EvaluationSettings)
    chat_settings: ChatSettings = Field(default_factory=ChatSettings)
    state: StateSettings = Field(default_factory=StateSettings)


class ConfigLoader:
    """Load and merge configuration from files and CLI arguments."""

    @staticmethod
    def discover_config_file(explicit_path: Path | None = None) -> Path | None:
        """Find configuration file in priority order.

        Args:
            explicit_path: Explicitly provided config file path.

        Returns:
            Path to config file, or None if not found.

        Raises:
            ConfigurationError: If explicit path doesn't exist.
        """
        if explicit_path is not None:
            if not explicit_path.exists():
                msg = f"Configuration file not found: {explicit_path}"
                raise ConfigurationError(msg)
            return explicit_path

        cwd = Path.cwd()
        for filename in CONFIG_FILE_NAMES:
            config_path = cwd / filename
            if config_path.exists():
                return config_path

        return None

    @staticmethod
    def load_yaml(path: Path) -> dict[str, Any]:
        """Load and parse YAML configuration file.

        Raises:
            ConfigurationError: If file cannot be read or parsed.
        """
        try:
            with path.open(encoding="utf-8") as f:
                content = yaml.safe_load(f)
        except yaml.YAMLError as e:
            msg = f"Failed to parse configuration file {path}: {e}"
            raise ConfigurationError(msg) from e
        except OSError as e:
            msg = f"Failed to read configuration file {path}: {e}"
            raise ConfigurationError(msg) from e

        if content is None:
            return {}
        if not isinstance(content, dict):
            msg = f"Configuration file {path} must contain a mapping"
            raise ConfigurationError(msg)
        return content

    @staticmethod
    def interpolate_env_vars(value: Any) -> Any:
        """Recursively interpolate environment variables in configuration.

        Supports two syntaxes:
        - ${VAR} - Required variable, raises error if not set
        - ${VAR:-default} - Optional variable with default value

        Raises:
            ConfigurationError: If required environment variable is not set.
        """
        if isinstance(value, str):

            def replace(match: re.Match[str]) -> str:
                var_name = match.group(1)
                default_value = match.group(2)
                env_value = os.environ.get(var_name)
                if env_value is not None:
                    return env_value
                if default_value is not None:
                    return default_value
                msg = f"Environment variable {var_name} is not set"
                raise ConfigurationError(msg)

            return ENV_VAR_PATTERN.sub(replace, value)
        if isinstance(value, dict):
            return {k: ConfigLoader.interpolate_env_vars(v) for k, v in value.items()}
        if isinstance(value, list):
            return [ConfigLoader.interpolate_env_vars(item) for item in value]
        return value

    @staticmethod
    def load_config(explicit_path: Path | None = None) -> FileConfig | None:
        """Discover, load, and parse configuration file.

        Returns:
            Parsed FileConfig, or None if no config file found.

        Raises:
            ConfigurationError: If config file exists but is invalid.
        """
        config_path = ConfigLoader.discover_config_file(explicit_path)
        if config_path is None:
            return None

        raw_config = ConfigLoader.load_yaml(config_path)
        interpolated = ConfigLoader.interpolate_env_vars(raw_config)

        try:
            return FileConfig.model_validate(interpolated)
        except ValidationError as e:
            msg = f"Invalid configuration in {config_path}: {e}"
            raise ConfigurationError(msg) from e

    @staticmethod
    def _apply_llm_config(source: LLMConfig, values: _ResolvedValues) -> None:
        values.provider = source.provider
        values.model = source.model
        values.temperature = source.temperature
        values.max_tokens = source.max_tokens
        values.base_url = source.base_url or values.base_url
        if source.api_key:
            values.api_key = source.api_key.get_secret_value()
        if source.context_size is not None:
            values.context_size = source.context_size
        if source.reasoning is not None:
            values.reasoning = source.reasoning

    @staticmethod
    def _apply_cli_overrides(cli: CLIOverrides, values: _ResolvedValues) -> None:
        for field in ("provider", "model", "temperature", "max_tokens", "base_url", "api_key"):
            override = getattr(cli, field)
            if override is not None:
                setattr(values, field, override)

    @staticmethod
    def resolve_llm_config(
        file_config: FileConfig | None,
        component: str,
        cli_overrides: CLIOverrides | None = None,
        default_provider: str = "ollama",
        default_model: str = "llama3.2",
    ) -> LLMConfig:
        """Resolve LLM configuration for a specific component.

        Priority order (highest to lowest):
        1. CLI arguments (via cli_overrides)
        2. Component-specific config (chat:, judge:, suggestions:)
        3. Shared LLM config (llm:)
        4. Defaults

        Args:
            file_config: Parsed configuration file, or None.
            component: Component name ("chat", "judge", "suggestions" or "llm").
            cli_overrides: CLI argument overrides, or None.
            default_provider: Default provider if not specified.
            default_model: Default model if not specified.

        Returns:
            Resolved LLMConfig for the component.

        Raises:
            ConfigurationError: If the component name is unknown.
        """
        if component != "llm" and component not in LLM_COMPONENTS:
            msg = f"Unknown LLM component: {component}"
            raise ConfigurationError(msg)

        values = _ResolvedValues(
            provider=default_provider,
            model=default_model,
            temperature=0.0,
            max_tokens=4096,
            base_url=None,
            api_key=None,
            context_size=None,
            reasoning=None,
        )

        if file_config and file_config.llm:
            ConfigLoader._apply_llm_config(file_config.llm, values)

        component_config: LLMConfig | None = None
        if file_config and component != "llm":
            component_config = getattr(file_config, component)
        if component_config:
            ConfigLoader._apply_llm_config(component_config, values)

        if cli_overrides:
            ConfigLoader._apply_cli_overrides(cli_overrides, values)

        return LLMConfig(
            provider=values.provider,
            model=values.model,
            temperature=values.temperature,
            max_tokens=values.max_tokens,
            base_url=values.base_url,
            api_key=SecretStr(values.api_key) if values.api_key else None,
            context_size=values.context_size,
            reasoning=values.reasoning,
        )

    @staticmethod
    def resolve_connection(
        file_config: FileConfig | None,
        persisted: ConnectionSettings | None = None,
        cli_overrides: RemoteOverrides | None = None,
    ) -> ConnectionSettings:
        """Resolve the remote backend connection.

        Priority order (highest to lowest):
        1. CLI arguments
        2. The config file's ``remote:`` section
        3. Settings saved with ``agentlab settings set``

        Each field is resolved independently.
        """
        layers: list[ConnectionSettings] = []
        if persisted is not None:
            layers.append(persisted)
        if file_config and file_config.remote:
            layers.append(file_config.remote)
        if cli_overrides is not None:
            layers.append(
                ConnectionSettings(
                    base_url=cli_overrides.base_url,
                    api_key=SecretStr(cli_overrides.api_key) if cli_overrides.api_key else None,
                    timeout_seconds=cli_overrides.timeout_seconds,
                )
            )

        resolved = ConnectionSettings()
        for layer in layers:
            updates = {
                field: getattr(layer, field)
                for field in ("base_url", "api_key", "timeout_seconds")
                if getattr(layer, field) is not None
            }
            resolved = resolved.model_copy(update=updates)
        return resolved

    @staticmethod
    def resolve_chat_settings(
        file_config: FileConfig | None,
        *,
        cli_language: str | None = None,
    ) -> ChatSettings:
        """Resolve chat preferences, letting the CLI pick the language."""
        settings = file_config.chat_settings if file_config else ChatSettings()
        if cli_language is not None:
            try:
                settings = ChatSettings(language=cli_language, user_name=settings.user_name)
            except ValidationError as e:
                msg = f"Unsupported language '{cli_language}'. Use 'en' or 'zh'."
                raise ConfigurationError(msg) from e
        return settings

    @staticmethod
    def resolve_evaluation_settings(
        file_config: FileConfig | None,
        *,
        cli_max_concurrency: int | None = None,
    ) -> EvaluationSettings:
        """Resolve evaluation runner settings."""
        max_concurrency = file_config.evaluation.max_concurrency if file_config else 1
        if cli_max_concurrency is not None:
            max_concurrency = cli_max_concurrency
        return EvaluationSettings(max_concurrency=max_concurrency)

    @staticmethod
    def resolve_state_dir(
        file_config: FileConfig | None,
        *,
        cli_state_dir: Path | None = None,
    ) -> Path:
        """Resolve the directory holding persisted slots."""
        if cli_state_dir is not None:
            return cli_state_dir
        return Path(file_config.state.dir if file_config else StateSettings().dir)


def load_config(explicit_path: Path | None = None) -> FileConfig | None:
    """Convenience function to load configuration.

    Args:
        explicit_path: Explicitly provided config file path.

    Returns:
        Parsed FileConfig, or None if no config file found.
    """
    return ConfigLoader.load_config(explicit_path)
