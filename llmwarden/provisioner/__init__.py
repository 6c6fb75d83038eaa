"""
Credential provisioning strategies.

provisioner_for() is the single dispatch point from an LLMProvider auth type
to its strategy. Adding a strategy means adding a branch here.
"""

from __future__ import annotations

from llmwarden.api.models import AuthType
from llmwarden.eso.adapter import Adapter
from llmwarden.kube.client import ResourceClient
from llmwarden.provisioner.apikey import ApiKeyProvisioner
from llmwarden.provisioner.base import (
    HealthCheckResult,
    Provisioner,
    ProvisionError,
    ProvisionResult,
)
from llmwarden.provisioner.externalsecret import ExternalSecretProvisioner


class UnsupportedAuthTypeError(ValueError):
    """No provisioning strategy exists for this auth type."""


def provisioner_for(auth_type: str, *, client: ResourceClient, adapter: Adapter) -> Provisioner:
    """Strategy for ``auth_type``.

    Raises:
        UnsupportedAuthTypeError: workloadIdentity (declared but not
            provisioned) or an unknown type.
    """
    if auth_type == AuthType.API_KEY:
        return ApiKeyProvisioner(client)
    if auth_type == AuthType.EXTERNAL_SECRET:
        return ExternalSecretProvisioner(client, adapter)
    raise UnsupportedAuthTypeError(f"auth type {auth_type!r} is not supported")


def all_provisioners(*, client: ResourceClient, adapter: Adapter) -> list[Provisioner]:
    """Every strategy, for cleanup when the LLMProvider is already gone."""
    return [ApiKeyProvisioner(client), ExternalSecretProvisioner(client, adapter)]


__all__ = [
    "ApiKeyProvisioner",
    "ExternalSecretProvisioner",
    "HealthCheckResult",
    "ProvisionError",
    "ProvisionResult",
    "Provisioner",
    "UnsupportedAuthTypeError",
    "all_provisioners",
    "provisioner_for",
]
