"""llmwarden.io/v1alpha1 API types."""

from llmwarden.api.models import (
    API_VERSION,
    GROUP,
    VERSION,
    AuthType,
    LLMAccess,
    LLMProvider,
    ProviderType,
    SecretStoreKind,
)

__all__ = [
    "API_VERSION",
    "GROUP",
    "VERSION",
    "AuthType",
    "LLMAccess",
    "LLMProvider",
    "ProviderType",
    "SecretStoreKind",
]
