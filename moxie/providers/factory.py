"""Provider resolution by name and per-process connection pooling."""

import logging
from typing import Dict, Type

from moxie.providers.anthropic import AnthropicProvider
from moxie.providers.base import Provider, UnknownProviderError
from moxie.providers.ollama import OllamaProvider
from moxie.providers.openai_compat import OpenAICompatProvider
from moxie.services.config_service import ConfigService

logger = logging.getLogger(__name__)

# Closed set of backend implementations, keyed by ProviderConfig.kind
PROVIDER_CLASSES: Dict[str, Type[Provider]] = {
    "ollama": OllamaProvider,
    "openai": OpenAICompatProvider,
    "anthropic": AnthropicProvider,
}


def create_provider(name: str, config_service: ConfigService) -> Provider:
    """Build a fresh provider for a configured name.

    Raises:
        UnknownProviderError: The name (or its kind) is not configured
    """
    config = config_service.get(name)
    if config is None:
        raise UnknownProviderError(name)

    provider_cls = PROVIDER_CLASSES.get(config.kind)
    if provider_cls is None:
        raise UnknownProviderError(f"{name} (kind '{config.kind}')")

    return provider_cls(config)


class ProviderPool:
    """Caches one provider per name so HTTP sessions are reused across calls."""

    def __init__(self, config_service: ConfigService):
        self.config_service = config_service
        self._providers: Dict[str, Provider] = {}

    def get(self, name: str) -> Provider:
        key = name.lower()
        provider = self._providers.get(key)
        if provider is None:
            provider = create_provider(key, self.config_service)
            self._providers[key] = provider
            logger.info(f"Created provider: {key} ({type(provider).__name__})")
        return provider

    async def close(self) -> None:
        for name, provider in list(self._providers.items()):
            await provider.close()
            logger.debug(f"Closed provider: {name}")
        self._providers.clear()
