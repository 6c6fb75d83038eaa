"""
Credential provisioning strategy contract.

A Provisioner produces, removes and health-checks the credential Secret for
one (LLMProvider, LLMAccess) pair. All three operations are idempotent and
safe to call before the Secret exists.

Usage:
    class MyProvisioner(Provisioner):
        auth_type = "myAuth"

        async def provision(self, ctx, provider, access) -> ProvisionResult: ...
        async def cleanup(self, ctx, provider, access) -> bool: ...
        async def health_check(self, ctx, provider, access) -> HealthCheckResult: ...
"""

from __future__ import annotations

import base64
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from llmwarden.api.models import LLMAccess, LLMProvider
from llmwarden.context import Context
from llmwarden.kube.client import ResourceClient, ResourceKind
from llmwarden.kube.errors import ApiError, NotFoundError
from llmwarden.kube.util import is_controlled_by

logger = logging.getLogger(__name__)

# Keys of the provisioned Secret
KEY_API_KEY = "apiKey"
KEY_BASE_URL = "baseUrl"
KEY_PROVIDER = "provider"

LABEL_MANAGED_BY = "llmwarden.io/managed-by"
LABEL_PROVIDER = "llmwarden.io/provider"
LABEL_ACCESS = "llmwarden.io/access"
LABEL_AUTH_TYPE = "llmwarden.io/auth-type"
MANAGED_BY = "llmwarden"


class ProvisionError(Exception):
    """A provisioning step failed for one target Secret.

    The message always names the namespace and Secret so the status
    condition alone is enough to act on.
    """

    def __init__(self, namespace: str, secret_name: str, message: str) -> None:
        super().__init__(f"secret {namespace}/{secret_name}: {message}")
        self.namespace = namespace
        self.secret_name = secret_name


@dataclass
class ProvisionResult:
    secret_name: str
    secret_namespace: str
    secret_keys: list[str]
    provisioned_at: datetime
    needs_rotation: bool = False
    created_at: datetime | None = None
    operation: str = ""
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class HealthCheckResult:
    healthy: bool
    message: str
    last_checked: datetime
    warnings: list[str] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)


def standard_labels(provider: LLMProvider, access: LLMAccess) -> dict[str, str]:
    """Labels stamped on every object llmwarden provisions."""
    return {
        LABEL_MANAGED_BY: MANAGED_BY,
        LABEL_PROVIDER: provider.name,
        LABEL_ACCESS: access.name,
        LABEL_AUTH_TYPE: provider.spec.auth.type,
    }


def b64encode(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


def b64decode(value: str) -> str:
    return base64.b64decode(value).decode()


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


async def delete_if_controlled(
    ctx: Context,
    client: ResourceClient,
    kind: ResourceKind,
    access: LLMAccess,
    name: str,
) -> bool:
    """Delete ``access.namespace/name`` only if ``access`` controls it.

    Returns True if something was deleted. An absent object, or one
    controlled by someone else, is left alone and counts as clean.
    """
    namespace = access.namespace
    try:
        obj = await client.get(kind, name, namespace=namespace)
    except NotFoundError:
        return False
    except ApiError as e:
        raise ProvisionError(namespace, name, f"failed to get {kind.kind}: {e}") from e

    if not is_controlled_by(obj, access.metadata.uid or ""):
        ctx.logger.info(
            "Leaving %s %s/%s in place: not controlled by LLMAccess %s",
            kind.kind, namespace, name, access.name,
        )
        return False

    try:
        await client.delete(kind, name, namespace=namespace)
    except NotFoundError:
        return False
    except ApiError as e:
        raise ProvisionError(namespace, name, f"failed to delete {kind.kind}: {e}") from e
    ctx.logger.info("Deleted %s %s/%s", kind.kind, namespace, name)
    return True


class Provisioner(ABC):
    """One credential provisioning strategy.

    Subclasses set ``auth_type`` to the LLMProvider auth type they serve.
    """

    auth_type: str

    def __init__(self, client: ResourceClient) -> None:
        self.client = client

    @abstractmethod
    async def provision(
        self, ctx: Context, provider: LLMProvider, access: LLMAccess
    ) -> ProvisionResult:
        """Create or update the credential Secret for ``access``.

        Sets ``access`` as the controlling owner of what it creates.
        A second call with unchanged inputs writes nothing.

        Raises:
            ProvisionError: the Secret could not be brought up to date.
        """

    @abstractmethod
    async def cleanup(self, ctx: Context, provider: LLMProvider | None, access: LLMAccess) -> bool:
        """Remove what ``provision`` created. Already absent is success.

        ``provider`` may be None when the LLMProvider was deleted first.
        """

    @abstractmethod
    async def health_check(
        self, ctx: Context, provider: LLMProvider, access: LLMAccess
    ) -> HealthCheckResult:
        """Read-only check of the provisioned credential."""
