"""
API key provisioner.

Copies the provider's master API key from the platform namespace into a
Secret in the LLMAccess namespace. The copy carries ``apiKey``, ``provider``
and, when the provider overrides its endpoint, ``baseUrl``.
"""

from __future__ import annotations

from datetime import timedelta

from llmwarden.api.models import AuthType, LLMAccess, LLMProvider
from llmwarden.context import Context
from llmwarden.kube.client import SECRET
from llmwarden.kube.errors import AlreadyOwnedError, ApiError, NotFoundError
from llmwarden.kube.util import create_or_update, merge_labels, set_controller
from llmwarden.provisioner.base import (
    KEY_API_KEY,
    KEY_BASE_URL,
    KEY_PROVIDER,
    HealthCheckResult,
    Provisioner,
    ProvisionError,
    ProvisionResult,
    b64encode,
    delete_if_controlled,
    parse_timestamp,
    standard_labels,
)

# Fixed age heuristics, independent of the configured rotation interval.
ROTATION_AGE_THRESHOLD = timedelta(hours=24)
AGE_WARNING_THRESHOLD = timedelta(days=25)


def _rotation_enabled(provider: LLMProvider) -> bool:
    rotation = provider.rotation
    return rotation is not None and rotation.enabled


class ApiKeyProvisioner(Provisioner):
    auth_type = AuthType.API_KEY

    async def provision(
        self, ctx: Context, provider: LLMProvider, access: LLMAccess
    ) -> ProvisionResult:
        namespace, secret_name = access.namespace, access.spec.secret_name
        api_key = provider.spec.auth.api_key
        if api_key is None:
            raise ProvisionError(
                namespace, secret_name, f"provider {provider.name} does not have apiKey configuration"
            )

        ref = api_key.secret_ref
        try:
            source = await self.client.get(SECRET, ref.name, namespace=ref.namespace)
        except NotFoundError as e:
            raise ProvisionError(
                namespace, secret_name, f"provider secret {ref.namespace}/{ref.name} not found"
            ) from e
        except ApiError as e:
            raise ProvisionError(
                namespace, secret_name, f"failed to get provider secret {ref.namespace}/{ref.name}: {e}"
            ) from e

        source_data = source.get("data") or {}
        if ref.key not in source_data:
            raise ProvisionError(
                namespace, secret_name, f"key {ref.key} not found in secret {ref.namespace}/{ref.name}"
            )

        base_url = provider.base_url
        labels = standard_labels(provider, access)
        owner = access.to_dict()

        def mutate(secret: dict) -> None:
            set_controller(secret, owner)
            data = dict(secret.get("data") or {})
            # Kubernetes keeps Secret data base64 encoded, so the value copies as is.
            data[KEY_API_KEY] = source_data[ref.key]
            if base_url:
                data[KEY_BASE_URL] = b64encode(base_url)
            else:
                data.pop(KEY_BASE_URL, None)
            data[KEY_PROVIDER] = b64encode(provider.spec.provider)
            secret["data"] = data
            merge_labels(secret, labels)
            secret["type"] = "Opaque"

        try:
            secret, operation = await create_or_update(self.client, SECRET, namespace, secret_name, mutate)
        except AlreadyOwnedError as e:
            raise ProvisionError(namespace, secret_name, str(e)) from e
        except ApiError as e:
            raise ProvisionError(namespace, secret_name, f"failed to create/update secret: {e}") from e

        now = ctx.now()
        ctx.logger.info("Secret %s/%s %s", namespace, secret_name, operation)

        created = parse_timestamp(secret.get("metadata", {}).get("creationTimestamp"))
        needs_rotation = False
        if _rotation_enabled(provider):
            if created is not None and created + ROTATION_AGE_THRESHOLD < now:
                needs_rotation = True

        secret_keys = [KEY_API_KEY]
        if base_url:
            secret_keys.append(KEY_BASE_URL)
        secret_keys.append(KEY_PROVIDER)

        return ProvisionResult(
            secret_name=secret_name,
            secret_namespace=namespace,
            secret_keys=secret_keys,
            provisioned_at=now,
            needs_rotation=needs_rotation,
            created_at=created,
            operation=operation,
            metadata={
                "provider": provider.name,
                "providerType": provider.spec.provider,
                "authType": provider.spec.auth.type,
                "sourceSecret": f"{ref.namespace}/{ref.name}",
                "targetSecret": f"{namespace}/{secret_name}",
            },
        )

    async def cleanup(self, ctx: Context, provider: LLMProvider | None, access: LLMAccess) -> bool:
        return await delete_if_controlled(ctx, self.client, SECRET, access, access.spec.secret_name)

    async def health_check(
        self, ctx: Context, provider: LLMProvider, access: LLMAccess
    ) -> HealthCheckResult:
        now = ctx.now()
        namespace, secret_name = access.namespace, access.spec.secret_name
        try:
            secret = await self.client.get(SECRET, secret_name, namespace=namespace)
        except NotFoundError:
            return HealthCheckResult(healthy=False, message="Secret not found", last_checked=now)
        except ApiError as e:
            raise ProvisionError(namespace, secret_name, f"failed to get secret: {e}") from e

        if KEY_API_KEY not in (secret.get("data") or {}):
            return HealthCheckResult(
                healthy=False, message="API key not found in secret", last_checked=now
            )

        result = HealthCheckResult(
            healthy=True,
            message="Secret exists and contains valid API key",
            last_checked=now,
        )

        api_key = provider.spec.auth.api_key
        if api_key is not None:
            ref = api_key.secret_ref
            try:
                await self.client.get(SECRET, ref.name, namespace=ref.namespace)
            except ApiError:
                result.warnings.append(f"Source secret {ref.namespace}/{ref.name} not accessible")

        created = parse_timestamp(secret.get("metadata", {}).get("creationTimestamp"))
        if created is not None:
            age = now - created
            result.metadata["secretAge"] = str(age)
            if _rotation_enabled(provider) and age > AGE_WARNING_THRESHOLD:
                result.warnings.append("Secret is nearing rotation interval")

        return result
