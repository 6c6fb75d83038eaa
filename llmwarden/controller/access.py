"""
LLMAccess reconciler.

One pass re-derives everything from the stored LLMAccess, its LLMProvider
and the namespace. kopf runs it per object, one pass at a time, and owns the
finalizer; deletion goes through ``finalize``. Steps, each safe to repeat
after a crash:

1. resolve the LLMProvider (missing: retry on a short backoff);
2. namespace admission (rejected: no retry);
3. model allow-list (rejected: no retry);
4. pick the provisioning strategy (unsupported: long backoff);
5. provision (failure: short backoff);
6. record the Secret reference, rotation timestamps and conditions.

The next pass is due at ``status.nextRotation``. Retries are requested by
raising ``kopf.TemporaryError`` after the status has been written.
"""

from __future__ import annotations

import copy
import time
from datetime import datetime, timedelta

import kopf

from llmwarden.api.conditions import (
    ConditionStatus,
    ConditionType,
    Reason,
    infer_phase,
    set_condition,
)
from llmwarden.api.models import LLMAccess, LLMProvider, ObjectReference
from llmwarden.config import ControllerConfig
from llmwarden.context import Context
from llmwarden.eso.adapter import Adapter
from llmwarden.kube.client import LLM_ACCESS, LLM_PROVIDER, NAMESPACE, ResourceClient
from llmwarden.kube.errors import NotFoundError
from llmwarden.kube.util import OperationResult
from llmwarden.provisioner import (
    Provisioner,
    ProvisionError,
    UnsupportedAuthTypeError,
    all_provisioners,
    provisioner_for,
)
from llmwarden.rotation import effective_rotation_interval
from llmwarden.selector import SelectorError, matches


async def timed(ctx: Context, controller: str, coro):
    """Await ``coro`` and record its duration by outcome."""
    start = time.monotonic()
    outcome = "error"
    try:
        result = await coro
        outcome = "success"
        return result
    except kopf.TemporaryError:
        outcome = "requeue"
        raise
    finally:
        ctx.metrics.reconciliation_duration.labels(
            controller=controller, result=outcome
        ).observe(time.monotonic() - start)


class AccessReconciler:
    controller_name = "llmaccess"

    def __init__(
        self,
        client: ResourceClient,
        ctx: Context,
        config: ControllerConfig,
        adapter: Adapter,
    ) -> None:
        self.client = client
        self.ctx = ctx
        self.config = config
        self.adapter = adapter

    async def reconcile(self, namespace: str, name: str) -> None:
        ctx = self.ctx.bind(llmaccess=f"{namespace}/{name}")
        await timed(ctx, self.controller_name, self._reconcile(ctx, namespace, name))

    async def finalize(self, namespace: str, name: str) -> None:
        """Remove what was provisioned for a deleted LLMAccess.

        Raises kopf.TemporaryError while cleanup fails, which keeps the
        finalizer in place.
        """
        ctx = self.ctx.bind(llmaccess=f"{namespace}/{name}")
        await timed(ctx, self.controller_name, self._finalize(ctx, namespace, name))

    def _retry(self, message: str, backoff: str) -> kopf.TemporaryError:
        return kopf.TemporaryError(message, delay=self.config.backoff(backoff).total_seconds())

    async def _reconcile(self, ctx: Context, namespace: str, name: str) -> None:
        try:
            raw = await self.client.get(LLM_ACCESS, name, namespace=namespace)
        except NotFoundError:
            ctx.logger.debug("LLMAccess not found, ignoring since it must be deleted")
            return
        access = LLMAccess.model_validate(raw)
        if access.metadata.deletion_timestamp is not None:
            return

        now = ctx.now().replace(microsecond=0)
        provider_name = access.spec.provider_ref.name

        # 1. Provider
        try:
            provider = LLMProvider.model_validate(await self.client.get(LLM_PROVIDER, provider_name))
        except NotFoundError:
            message = f"LLMProvider {provider_name} not found"
            ctx.logger.warning("%s", message)
            ctx.recorder.warning(raw, Reason.PROVIDER_NOT_FOUND, message)
            self._set_ready(access, ConditionStatus.FALSE, Reason.PROVIDER_NOT_FOUND, message, now)
            await self._update_status(raw, access)
            ctx.metrics.set_access_status(provider_name, namespace, "provider_not_found")
            raise self._retry(message, "provider_not_found")

        # 2. Namespace admission
        if not await self._namespace_allowed(ctx, namespace, provider):
            message = f"Namespace {namespace} is not allowed by LLMProvider {provider.name}"
            ctx.logger.info("%s", message)
            ctx.recorder.warning(raw, Reason.NAMESPACE_NOT_ALLOWED, message)
            self._set_ready(access, ConditionStatus.FALSE, Reason.NAMESPACE_NOT_ALLOWED, message, now)
            await self._update_status(raw, access)
            ctx.metrics.set_access_status(provider.name, namespace, "namespace_not_allowed")
            # Permanent until the provider, the namespace or this LLMAccess changes.
            return

        # 3. Models
        message = _check_models(access.spec.models, provider.spec.allowed_models)
        if message:
            ctx.logger.info("Model validation failed: %s", message)
            ctx.recorder.warning(raw, Reason.MODEL_NOT_ALLOWED, message)
            self._set_ready(access, ConditionStatus.FALSE, Reason.MODEL_NOT_ALLOWED, message, now)
            await self._update_status(raw, access)
            ctx.metrics.set_access_status(provider.name, namespace, "model_not_allowed")
            return

        # 4. Strategy
        try:
            provisioner = provisioner_for(
                provider.spec.auth.type, client=self.client, adapter=self.adapter
            )
        except UnsupportedAuthTypeError:
            message = f"Auth type {provider.spec.auth.type} not supported"
            ctx.logger.info("%s", message)
            ctx.recorder.warning(raw, Reason.AUTH_TYPE_NOT_SUPPORTED, message)
            self._set_ready(access, ConditionStatus.FALSE, Reason.AUTH_TYPE_NOT_SUPPORTED, message, now)
            await self._update_status(raw, access)
            ctx.metrics.set_access_status(provider.name, namespace, "auth_type_not_supported")
            raise self._retry(message, "unsupported")

        # 5. Provision
        try:
            provisioned = await provisioner.provision(ctx, provider, access)
        except ProvisionError as e:
            message = f"Failed to provision credentials: {e}"
            ctx.logger.warning("%s", message)
            ctx.recorder.warning(raw, Reason.SECRET_UPDATE_FAILED, message)
            set_condition(
                access.status.conditions,
                ConditionType.CREDENTIAL_PROVISIONED,
                ConditionStatus.FALSE,
                Reason.SECRET_UPDATE_FAILED,
                str(e),
                now=now,
                generation=access.metadata.generation,
            )
            self._set_ready(access, ConditionStatus.FALSE, Reason.RECONCILIATION_ERROR, message, now)
            await self._update_status(raw, access)
            ctx.metrics.secret_provisioning.labels(
                provider=provider.name, namespace=namespace, result="error"
            ).inc()
            ctx.metrics.set_access_status(provider.name, namespace, "error")
            if access.status.last_rotation is not None:
                ctx.metrics.credential_rotation_errors.labels(
                    provider=provider.name, namespace=namespace, error_type="provision"
                ).inc()
            raise self._retry(message, "transient") from e

        ctx = ctx.bind(**provisioned.metadata)
        ctx.logger.info(
            "Secret %s/%s %s with keys %s",
            provisioned.secret_namespace,
            provisioned.secret_name,
            provisioned.operation,
            ", ".join(provisioned.secret_keys),
        )
        if provisioned.needs_rotation:
            ctx.logger.info("Secret is past the rotation age threshold")

        # 6. Record
        status = access.status
        interval = effective_rotation_interval(access, provider)
        _record_rotation(access, provisioned.provisioned_at.replace(microsecond=0), interval)
        status.secret_ref = ObjectReference(namespace=namespace, name=provisioned.secret_name)
        status.provisioned_models = list(access.spec.models)
        set_condition(
            status.conditions,
            ConditionType.CREDENTIAL_PROVISIONED,
            ConditionStatus.TRUE,
            Reason.SECRET_CREATED,
            "Secret created/updated successfully",
            now=now,
            generation=access.metadata.generation,
        )
        became_ready = self._set_ready(
            access, ConditionStatus.TRUE, Reason.CREDENTIAL_PROVISIONED,
            "Credentials provisioned and ready", now,
        )
        await self._update_status(raw, access)

        if became_ready or provisioned.operation != OperationResult.UNCHANGED:
            ctx.recorder.normal(
                raw,
                Reason.CREDENTIAL_PROVISIONED,
                f"Successfully provisioned credentials for provider {provider.name}",
            )
        ctx.metrics.secret_provisioning.labels(
            provider=provider.name, namespace=namespace, result="success"
        ).inc()
        ctx.metrics.set_access_status(provider.name, namespace, "ready")
        if provisioned.operation == OperationResult.UPDATED:
            ctx.metrics.credential_rotations.labels(provider=provider.name, namespace=namespace).inc()
        if provisioned.created_at is not None:
            ctx.metrics.credential_age.labels(
                provider=provider.name, namespace=namespace, name=access.name
            ).set((now - provisioned.created_at).total_seconds())
        if status.next_rotation is not None:
            ctx.metrics.credential_next_rotation.labels(
                provider=provider.name, namespace=namespace, name=access.name
            ).set((status.next_rotation - now).total_seconds())

        await self._health_check(ctx, raw, provisioner, provider, access)
        ctx.logger.info(
            "Reconciled LLMAccess (phase %s, next rotation %s)",
            infer_phase(access),
            status.next_rotation.isoformat() if status.next_rotation else "never",
        )

    # ─── Steps ───────────────────────────────────────────────────────

    async def _finalize(self, ctx: Context, namespace: str, name: str) -> None:
        try:
            raw = await self.client.get(LLM_ACCESS, name, namespace=namespace)
        except NotFoundError:
            return
        access = LLMAccess.model_validate(raw)

        provider: LLMProvider | None = None
        try:
            provider = LLMProvider.model_validate(
                await self.client.get(LLM_PROVIDER, access.spec.provider_ref.name)
            )
        except NotFoundError:
            ctx.logger.info(
                "LLMProvider %s already gone, running every cleanup", access.spec.provider_ref.name
            )

        provisioners: list[Provisioner]
        if provider is None:
            provisioners = all_provisioners(client=self.client, adapter=self.adapter)
        else:
            try:
                provisioners = [
                    provisioner_for(provider.spec.auth.type, client=self.client, adapter=self.adapter)
                ]
            except UnsupportedAuthTypeError:
                provisioners = all_provisioners(client=self.client, adapter=self.adapter)

        try:
            for provisioner in provisioners:
                await provisioner.cleanup(ctx, provider, access)
        except ProvisionError as e:
            ctx.logger.warning("Cleanup failed, keeping finalizer: %s", e)
            ctx.recorder.warning(raw, Reason.CLEANUP_FAILED, f"Cleanup failed: {e}")
            raise self._retry(f"Cleanup failed: {e}", "transient") from e
        ctx.logger.info("Cleanup complete")

    async def _namespace_allowed(self, ctx: Context, namespace: str, provider: LLMProvider) -> bool:
        selector = provider.spec.namespace_selector
        if selector is None:
            return True
        try:
            ns = await self.client.get(NAMESPACE, namespace)
        except NotFoundError:
            return False
        labels = ns.get("metadata", {}).get("labels") or {}
        try:
            return matches(selector, labels)
        except SelectorError as e:
            ctx.logger.warning("Invalid namespaceSelector on LLMProvider %s: %s", provider.name, e)
            return False

    async def _health_check(
        self,
        ctx: Context,
        raw: dict,
        provisioner: Provisioner,
        provider: LLMProvider,
        access: LLMAccess,
    ) -> None:
        try:
            health = await provisioner.health_check(ctx, provider, access)
        except ProvisionError as e:
            ctx.logger.warning("Health check failed: %s", e)
            return
        if health.healthy and not health.warnings:
            return
        problems = [] if health.healthy else [health.message]
        problems.extend(health.warnings)
        message = "; ".join(problems)
        ctx.logger.warning("Credential health: %s", message)
        ctx.recorder.warning(raw, Reason.CREDENTIAL_UNHEALTHY, message)

    # ─── Status helpers ──────────────────────────────────────────────

    # ─── Status helpers ──────────────────────────────────────────────

    @staticmethod
    def _set_ready(
        access: LLMAccess, status: str, reason: str, message: str, now: datetime
    ) -> bool:
        return set_condition(
            access.status.conditions,
            ConditionType.READY,
            status,
            reason,
            message,
            now=now,
            generation=access.metadata.generation,
        )

    async def _update_status(self, raw: dict, access: LLMAccess) -> bool:
        """Write status if it differs from the stored one. Returns True if written."""
        new_status = access.status.to_dict()
        if raw.get("status") == new_status:
            return False
        body = copy.deepcopy(raw)
        body["status"] = new_status
        updated = await self.client.update_status(LLM_ACCESS, body)
        raw.clear()
        raw.update(updated)
        return True


def _check_models(requested: list[str], allowed: list[str]) -> str:
    """Error message for requested models outside a non-empty allow-list, else ""."""
    if not allowed:
        return ""
    not_allowed = [m for m in requested if m not in set(allowed)]
    if not not_allowed:
        return ""
    return f"models not allowed: {', '.join(not_allowed)} (allowed models: {', '.join(allowed)})"


def _record_rotation(access: LLMAccess, provisioned_at: datetime, interval: timedelta) -> None:
    """Stamp lastRotation with this pass and schedule the next one an interval later."""
    access.status.last_rotation = provisioned_at
    access.status.next_rotation = provisioned_at + interval if interval > timedelta(0) else None
