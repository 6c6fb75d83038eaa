"""External Secrets Operator adapters."""

from llmwarden.eso.adapter import (
    Adapter,
    ExternalSecretData,
    ExternalSecretSpec,
    ExternalSecretTarget,
    RemoteRef,
    SecretCreationPolicy,
    StoreRef,
    SyncStatus,
)
from llmwarden.eso.v1beta1 import V1BETA1_KIND, V1Beta1Adapter

__all__ = [
    "V1BETA1_KIND",
    "Adapter",
    "ExternalSecretData",
    "ExternalSecretSpec",
    "ExternalSecretTarget",
    "RemoteRef",
    "SecretCreationPolicy",
    "StoreRef",
    "SyncStatus",
    "V1Beta1Adapter",
]
