"""
LLMProvider reconciler.

Validates the provider's auth configuration and records how many LLMAccess
objects reference it. A kopf timer re-runs it on a fixed resync period. It
never writes anything except the provider's own status.
"""

from __future__ import annotations

from llmwarden.api.conditions import ConditionStatus, ConditionType, Reason, set_condition
from llmwarden.api.models import AuthType, LLMProvider, SecretStoreKind
from llmwarden.config import ControllerConfig
from llmwarden.context import Context
from llmwarden.controller.access import timed
from llmwarden.kube.client import LLM_ACCESS, LLM_PROVIDER, SECRET, ResourceClient
from llmwarden.kube.errors import ApiError, NotFoundError

Check = tuple[str, str, str]  # (condition status, reason, message)


class ProviderReconciler:
    controller_name = "llmprovider"

    def __init__(self, client: ResourceClient, ctx: Context, config: ControllerConfig) -> None:
        self.client = client
        self.ctx = ctx
        self.config = config

    async def reconcile(self, name: str) -> None:
        ctx = self.ctx.bind(llmprovider=name)
        await timed(ctx, self.controller_name, self._reconcile(ctx, name))

    async def _reconcile(self, ctx: Context, name: str) -> None:
        try:
            raw = await self.client.get(LLM_PROVIDER, name)
        except NotFoundError:
            ctx.logger.debug("LLMProvider not found, ignoring since it must be deleted")
            return
        provider = LLMProvider.model_validate(raw)
        now = ctx.now().replace(microsecond=0)

        status, reason, message = await self.validate(provider)
        set_condition(
            provider.status.conditions,
            ConditionType.READY,
            status,
            reason,
            message,
            now=now,
            generation=provider.metadata.generation,
        )
        provider.status.last_credential_check = now

        try:
            accesses = await self.client.list(LLM_ACCESS, namespace=self.config.watch_namespace or None)
        except ApiError as e:
            ctx.logger.error("Failed to list LLMAccess resources: %s", e)
        else:
            count = sum(1 for a in accesses if a.get("spec", {}).get("providerRef", {}).get("name") == name)
            provider.status.access_count = count
            ctx.metrics.provider_access_count.labels(provider=name).set(count)

        body = dict(raw)
        body["status"] = provider.status.to_dict()
        await self.client.update_status(LLM_PROVIDER, body)

        healthy = status == ConditionStatus.TRUE
        ctx.metrics.set_provider_health(name, healthy)
        if healthy:
            ctx.recorder.normal(raw, Reason.PROVIDER_HEALTHY, "LLM provider is healthy and ready")
        else:
            ctx.recorder.warning(
                raw, Reason.PROVIDER_UNHEALTHY, f"LLM provider health check failed: {message}"
            )
        ctx.logger.debug("Reconciled LLMProvider (ready=%s, reason=%s)", status, reason)

    async def validate(self, provider: LLMProvider) -> Check:
        auth_type = provider.spec.auth.type
        if auth_type == AuthType.API_KEY:
            return await self._validate_api_key(provider)
        if auth_type == AuthType.EXTERNAL_SECRET:
            return _validate_external_secret(provider)
        if auth_type == AuthType.WORKLOAD_IDENTITY:
            return (
                ConditionStatus.TRUE,
                Reason.WORKLOAD_IDENTITY_NOT_VALIDATED,
                "WorkloadIdentity auth type accepted without validation",
            )
        return ConditionStatus.FALSE, Reason.UNKNOWN_AUTH_TYPE, f"Unknown auth type: {auth_type}"

    async def _validate_api_key(self, provider: LLMProvider) -> Check:
        api_key = provider.spec.auth.api_key
        if api_key is None:
            return (
                ConditionStatus.FALSE,
                Reason.INVALID_CONFIG,
                "spec.auth.apiKey is required when spec.auth.type is apiKey",
            )

        ref = api_key.secret_ref
        try:
            secret = await self.client.get(SECRET, ref.name, namespace=ref.namespace)
        except NotFoundError:
            return (
                ConditionStatus.FALSE,
                Reason.SECRET_NOT_FOUND,
                f"Provider secret {ref.namespace}/{ref.name} not found",
            )
        except ApiError as e:
            return (
                ConditionStatus.FALSE,
                Reason.SECRET_GET_ERROR,
                f"Failed to get provider secret {ref.namespace}/{ref.name}: {e}",
            )

        if ref.key not in (secret.get("data") or {}):
            return (
                ConditionStatus.FALSE,
                Reason.SECRET_KEY_MISSING,
                f"Key {ref.key!r} not found in secret {ref.namespace}/{ref.name}",
            )
        return (
            ConditionStatus.TRUE,
            Reason.SECRET_FOUND,
            f"Provider secret {ref.namespace}/{ref.name} exists and contains key {ref.key!r}",
        )


def _validate_external_secret(provider: LLMProvider) -> Check:
    """Shape checks only; ESO may not be installed yet."""
    config = provider.spec.auth.external_secret
    if config is None:
        return (
            ConditionStatus.FALSE,
            Reason.INVALID_CONFIG,
            "spec.auth.externalSecret is required when spec.auth.type is externalSecret",
        )
    if not config.store.name:
        return (
            ConditionStatus.FALSE,
            Reason.INVALID_CONFIG,
            "spec.auth.externalSecret.store.name must not be empty",
        )
    if config.store.kind not in (SecretStoreKind.SECRET_STORE, SecretStoreKind.CLUSTER_SECRET_STORE):
        return (
            ConditionStatus.FALSE,
            Reason.INVALID_CONFIG,
            "spec.auth.externalSecret.store.kind must be SecretStore or ClusterSecretStore, "
            f"got {config.store.kind!r}",
        )
    if not config.remote_ref.key:
        return (
            ConditionStatus.FALSE,
            Reason.INVALID_CONFIG,
            "spec.auth.externalSecret.remoteRef.key must not be empty",
        )
    return (
        ConditionStatus.TRUE,
        Reason.EXTERNAL_SECRET_CONFIGURED,
        f"ExternalSecret configured: {config.store.kind}/{config.store.name} -> {config.remote_ref.key}",
    )
