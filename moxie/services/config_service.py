"""Provider configuration service (thread-safe)."""

import logging
import os
import threading
from dataclasses import dataclass, replace
from typing import Dict, List, Optional

from moxie.constants import DEFAULT_MODEL, DEFAULT_PROVIDER

logger = logging.getLogger(__name__)


@dataclass
class ProviderConfig:
    """Connection settings for a single chat-completion backend."""

    name: str
    kind: str                              # "ollama" | "openai" | "anthropic"
    description: str
    base_url: str
    model: str
    api_key_env: Optional[str] = None      # Environment variable name for the API key
    api_key: Optional[str] = None          # Explicit key, wins over api_key_env
    organization_env: Optional[str] = None
    timeout_s: float = 120.0
    max_retries: int = 3                   # Total attempts for retryable failures
    retry_base_delay: float = 0.5

    def get_api_key(self) -> str:
        """Get the API key, explicit value first, then the environment."""
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.getenv(self.api_key_env, "")
        return ""

    def get_organization(self) -> Optional[str]:
        if not self.organization_env:
            return None
        return os.getenv(self.organization_env) or None

    def validate(self) -> tuple[bool, Optional[str]]:
        """
        Validate configuration.

        Returns:
            (is_valid, error_message)
        """
        if self.api_key_env and not self.get_api_key():
            return False, f"API key not found (env: {self.api_key_env})"

        if not self.base_url.startswith(("http://", "https://")):
            return False, f"Invalid base_url format: {self.base_url}"

        if self.max_retries < 1:
            return False, "max_retries must be at least 1"

        return True, None

    def to_public_dict(self) -> dict:
        """Serializable view without secrets."""
        return {
            "name": self.name,
            "kind": self.kind,
            "description": self.description,
            "base_url": self.base_url,
            "model": self.model,
            "timeout_s": self.timeout_s,
            "has_api_key": bool(self.get_api_key()),
        }


# Predefined provider configurations - NO SECRETS, only env var names
PREDEFINED_CONFIGS: Dict[str, ProviderConfig] = {
    "ollama": ProviderConfig(
        name="ollama",
        kind="ollama",
        description="Local Ollama server",
        base_url=os.getenv("OLLAMA_URL", "http://localhost:11434"),
        model="llama3.2",
        timeout_s=300.0,  # Local inference can be slow
    ),
    "openai": ProviderConfig(
        name="openai",
        kind="openai",
        description="OpenAI chat completions API",
        base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        model="gpt-4o-mini",
        api_key_env="OPENAI_API_KEY",
        organization_env="OPENAI_ORGANIZATION",
    ),
    "groq": ProviderConfig(
        name="groq",
        kind="openai",
        description="Groq (OpenAI-compatible)",
        base_url="https://api.groq.com/openai/v1",
        model="llama-3.3-70b-versatile",
        api_key_env="GROQ_API_KEY",
        timeout_s=60.0,
    ),
    "anthropic": ProviderConfig(
        name="anthropic",
        kind="anthropic",
        description="Anthropic Messages API",
        base_url=os.getenv("ANTHROPIC_BASE_URL", "https://api.anthropic.com"),
        model="claude-sonnet-4-5",
        api_key_env="ANTHROPIC_API_KEY",
    ),
}


class ConfigService:
    """
    Provider configuration registry (thread-safe).

    Holds a private copy of the presets, so tests and callers can override
    entries without touching module state.
    """

    def __init__(
        self,
        default_provider: str = DEFAULT_PROVIDER,
        configs: Optional[Dict[str, ProviderConfig]] = None,
        default_model: Optional[str] = DEFAULT_MODEL,
    ):
        """
        Args:
            default_model: Replaces the model of the startup provider only;
                other providers keep their own preset model
        """
        self._lock = threading.Lock()
        self._configs: Dict[str, ProviderConfig] = {
            name: replace(cfg) for name, cfg in (configs or PREDEFINED_CONFIGS).items()
        }
        if default_provider not in self._configs:
            logger.warning(
                f"Invalid default provider '{default_provider}'. "
                f"Available: {list(self._configs.keys())}. Falling back to 'ollama'"
            )
            default_provider = "ollama"
        self._current = default_provider
        if default_model:
            self._configs[default_provider] = replace(self._configs[default_provider], model=default_model)
            logger.info(f"Default model for {default_provider}: {default_model}")

    def get(self, name: str) -> Optional[ProviderConfig]:
        """Look up a provider config by name (case-insensitive)."""
        with self._lock:
            return self._configs.get(name.lower())

    def get_current_config_name(self) -> str:
        with self._lock:
            return self._current

    def get_current_config(self) -> ProviderConfig:
        with self._lock:
            return self._configs[self._current]

    def get_available_configs(self) -> List[Dict]:
        with self._lock:
            current = self._current
            return [
                {**cfg.to_public_dict(), "is_active": cfg.name == current}
                for cfg in self._configs.values()
            ]

    def register_config(self, config: ProviderConfig) -> None:
        """Add or replace a provider config."""
        with self._lock:
            self._configs[config.name.lower()] = config
        logger.info(f"Registered provider config: {config.name}")

    def switch_config(self, name: str) -> bool:
        """Switch the default provider (atomic)."""
        with self._lock:
            config = self._configs.get(name.lower())
            if config is None:
                logger.error(f"Unknown provider config: {name}")
                return False

            is_valid, error_msg = config.validate()
            if not is_valid:
                logger.error(f"Invalid provider config {name}: {error_msg}")
                return False

            self._current = config.name
            logger.info(f"Switched default provider to: {config.name}")
            return True
