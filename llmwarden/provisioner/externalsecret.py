"""
External Secrets Operator provisioner.

Never touches credential bytes. It creates an ExternalSecret (through the
injected eso.Adapter) that tells ESO to sync the provider's remote key into
the LLMAccess Secret, and reports ESO's sync state as its own health.
"""

from __future__ import annotations

from llmwarden.api.models import AuthType, LLMAccess, LLMProvider
from llmwarden.context import Context
from llmwarden.eso.adapter import (
    Adapter,
    ExternalSecretData,
    ExternalSecretSpec,
    ExternalSecretTarget,
    RemoteRef,
    SecretCreationPolicy,
    StoreRef,
)
from llmwarden.kube.client import ResourceClient
from llmwarden.kube.errors import AlreadyOwnedError, ApiError, NotFoundError
from llmwarden.kube.util import apply_spec, create_or_update, merge_labels, set_controller
from llmwarden.provisioner.base import (
    KEY_API_KEY,
    HealthCheckResult,
    Provisioner,
    ProvisionError,
    ProvisionResult,
    delete_if_controlled,
    parse_timestamp,
    standard_labels,
)
from llmwarden.rotation import effective_refresh_interval


class ExternalSecretProvisioner(Provisioner):
    auth_type = AuthType.EXTERNAL_SECRET

    def __init__(self, client: ResourceClient, adapter: Adapter) -> None:
        super().__init__(client)
        self.adapter = adapter

    def build_spec(self, provider: LLMProvider, access: LLMAccess) -> ExternalSecretSpec:
        config = provider.spec.auth.external_secret
        refresh_interval = effective_refresh_interval(access, config.refresh_interval)
        return ExternalSecretSpec(
            refresh_interval=refresh_interval,
            store_ref=StoreRef(name=config.store.name, kind=config.store.kind),
            target=ExternalSecretTarget(
                name=access.spec.secret_name,
                creation_policy=SecretCreationPolicy.OWNER,
            ),
            # Always exposed as apiKey so env mappings look the same for every auth type.
            data=[
                ExternalSecretData(
                    secret_key=KEY_API_KEY,
                    remote_ref=RemoteRef(
                        key=config.remote_ref.key,
                        property=config.remote_ref.property or "",
                    ),
                )
            ],
        )

    async def provision(
        self, ctx: Context, provider: LLMProvider, access: LLMAccess
    ) -> ProvisionResult:
        namespace, name = access.namespace, access.spec.secret_name
        config = provider.spec.auth.external_secret
        if config is None:
            raise ProvisionError(
                namespace, name, f"provider {provider.name} does not have externalSecret configuration"
            )

        spec = self.build_spec(provider, access)
        labels = standard_labels(provider, access)
        desired = self.adapter.build(namespace, name, labels, spec)
        owner = access.to_dict()

        def mutate(obj: dict) -> None:
            merge_labels(obj, labels)
            apply_spec(obj, desired["spec"])
            set_controller(obj, owner)

        try:
            obj, operation = await create_or_update(self.client, self.adapter.kind, namespace, name, mutate)
        except AlreadyOwnedError as e:
            raise ProvisionError(namespace, name, str(e)) from e
        except ApiError as e:
            raise ProvisionError(
                namespace, name, f"failed to create/update ExternalSecret {namespace}/{name}: {e}"
            ) from e

        ctx.logger.info("ExternalSecret %s/%s %s", namespace, name, operation)
        sync = self.adapter.parse_sync_status(obj)

        return ProvisionResult(
            secret_name=name,
            secret_namespace=namespace,
            # Actual keys appear once ESO syncs; apiKey is the one we asked for.
            secret_keys=[KEY_API_KEY],
            provisioned_at=ctx.now(),
            created_at=parse_timestamp(obj.get("metadata", {}).get("creationTimestamp")),
            operation=operation,
            metadata={
                "provider": provider.name,
                "providerType": provider.spec.provider,
                "authType": provider.spec.auth.type,
                "store": config.store.name,
                "storeKind": config.store.kind,
                "refreshInterval": spec.refresh_interval,
                "syncReady": str(sync.ready).lower(),
                "syncMessage": sync.message,
            },
        )

    async def cleanup(self, ctx: Context, provider: LLMProvider | None, access: LLMAccess) -> bool:
        # With creationPolicy Owner, ESO garbage-collects the synced Secret itself.
        return await delete_if_controlled(
            ctx, self.client, self.adapter.kind, access, access.spec.secret_name
        )

    async def health_check(
        self, ctx: Context, provider: LLMProvider, access: LLMAccess
    ) -> HealthCheckResult:
        now = ctx.now()
        namespace, name = access.namespace, access.spec.secret_name
        try:
            obj = await self.client.get(self.adapter.kind, name, namespace=namespace)
        except NotFoundError:
            return HealthCheckResult(healthy=False, message="ExternalSecret not found", last_checked=now)
        except ApiError as e:
            raise ProvisionError(namespace, name, f"failed to get ExternalSecret: {e}") from e

        sync = self.adapter.parse_sync_status(obj)
        result = HealthCheckResult(
            healthy=sync.ready,
            message=sync.message,
            last_checked=now,
            metadata={"syncReady": str(sync.ready).lower()},
        )
        if not sync.ready:
            result.warnings.append(f"ExternalSecret not yet synced by ESO: {sync.message}")
        return result
