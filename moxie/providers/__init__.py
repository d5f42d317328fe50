"""Chat-completion providers behind one async contract."""

from moxie.providers.base import (
    AuthError,
    BadResponseError,
    InvalidModelError,
    NetworkError,
    Provider,
    ProviderError,
    RateLimitedError,
    UnknownProviderError,
)
from moxie.providers.factory import PROVIDER_CLASSES, ProviderPool, create_provider

__all__ = [
    "AuthError",
    "BadResponseError",
    "InvalidModelError",
    "NetworkError",
    "PROVIDER_CLASSES",
    "Provider",
    "ProviderError",
    "ProviderPool",
    "RateLimitedError",
    "UnknownProviderError",
    "create_provider",
]
