"""Kubernetes API access."""

from llmwarden.kube.client import (
    LLM_ACCESS,
    LLM_PROVIDER,
    NAMESPACE,
    SECRET,
    KubeClient,
    ResourceClient,
    ResourceKind,
)
from llmwarden.kube.errors import (
    AlreadyExistsError,
    AlreadyOwnedError,
    ApiError,
    ConflictError,
    NotFoundError,
)

__all__ = [
    "LLM_ACCESS",
    "LLM_PROVIDER",
    "NAMESPACE",
    "SECRET",
    "AlreadyExistsError",
    "AlreadyOwnedError",
    "ApiError",
    "ConflictError",
    "KubeClient",
    "NotFoundError",
    "ResourceClient",
    "ResourceKind",
]
