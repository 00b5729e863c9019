"""Configuration for promptfan."""

import os
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

if TYPE_CHECKING:
    from .providers.models import ModelRegistry

load_dotenv()

# API endpoints
ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
DEEPSEEK_API_URL = "https://api.deepseek.com/v1/chat/completions"
GOOGLE_API_URL = "https://generativelanguage.googleapis.com"

ANTHROPIC_API_VERSION = "2023-06-01"

# Request defaults
DEFAULT_MODEL = "claude-3-7-sonnet-latest"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1000
REQUEST_TIMEOUT = 120.0

# Config directory layout
CONFIG_DIR_ENV = "PROMPTFAN_CONFIG_DIR"
CONFIG_FILE_NAME = "config.yml"
HISTORY_FILE_NAME = "queries.db"


def get_config_dir() -> Path:
    """Return the config directory, honouring PROMPTFAN_CONFIG_DIR."""
    override = os.getenv(CONFIG_DIR_ENV)
    if override:
        return Path(override)
    return Path.home() / ".config" / "promptfan"


def get_config_path() -> Path:
    return get_config_dir() / CONFIG_FILE_NAME


def get_history_path() -> Path:
    """Location of the query history database."""
    return get_config_dir() / HISTORY_FILE_NAME


class ProviderConfig(BaseModel):
    """Settings for a single provider."""
    api_key: str = ""


class Config(BaseModel):
    """Application configuration as stored in config.yml."""
    providers: Dict[str, ProviderConfig] = Field(default_factory=dict)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """
        Load the configuration file, or return an empty config if it is missing.

        Args:
            path: Config file path (defaults to get_config_path())

        Returns:
            Parsed Config

        Raises:
            ValueError: If the file is not valid YAML or does not match the schema
        """
        config_path = Path(path) if path is not None else get_config_path()
        if not config_path.exists():
            return cls()

        with open(config_path, 'r', encoding='utf-8') as f:
            try:
                raw_config = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"error parsing config file {config_path}: {e}") from e

        if not raw_config:
            return cls()

        try:
            return cls.model_validate(raw_config)
        except ValidationError as e:
            raise ValueError(f"invalid config file {config_path}: {e}") from e

    def save(self, path: Optional[Path] = None) -> Path:
        """Write the configuration, readable by the owner only."""
        config_path = Path(path) if path is not None else get_config_path()
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = yaml.safe_dump(self.model_dump(), default_flow_style=False)
        fd = os.open(config_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(data)
        return config_path

    def get_api_key(self, provider: str) -> str:
        """
        Return the API key for a provider.

        The config file wins; otherwise <PROVIDER>_API_KEY from the environment
        (or a .env file) is used.
        """
        provider_config = self.providers.get(provider)
        if provider_config and provider_config.api_key:
            return provider_config.api_key
        return os.getenv(f"{provider.upper()}_API_KEY", "")

    def set_api_key(self, provider: str, api_key: str, registry: Optional["ModelRegistry"] = None) -> None:
        """Store an API key for a known provider."""
        from .providers.models import DEFAULT_REGISTRY

        registry = registry or DEFAULT_REGISTRY
        if not registry.is_valid_provider(provider):
            raise ValueError(f"unsupported provider: {provider}")

        provider_config = self.providers.get(provider, ProviderConfig())
        self.providers[provider] = provider_config.model_copy(update={"api_key": api_key})

    def api_keys(self, registry: Optional["ModelRegistry"] = None) -> Dict[str, str]:
        """Non-empty API keys for every provider in the registry."""
        from .providers.models import DEFAULT_REGISTRY

        registry = registry or DEFAULT_REGISTRY
        keys = {}
        for provider in registry.providers():
            api_key = self.get_api_key(provider)
            if api_key:
                keys[provider] = api_key
        return keys
