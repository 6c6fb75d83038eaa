"""
kopf wiring for the LLMAccess and LLMProvider controllers.

kopf runs the watches, serializes handlers per object, retries failed
handlers and owns the LLMAccess finalizer. Handlers here are thin: they
pull the reconcilers out of ``memo`` and translate between kopf and them.

Event mapping:

- LLMAccess: create/update/resume run a pass; delete runs cleanup;
- LLMAccess timer: a grant whose ``status.nextRotation`` has passed gets
  kicked;
- LLMProvider: create/update/resume and a resync timer run a provider pass;
  a spec change, creation or deletion kicks every LLMAccess referencing it;
- Namespace: a modification kicks every LLMAccess in it;
- managed Secret / ExternalSecret: a change or deletion kicks the
  controlling LLMAccess.

A kick is a merge patch of RECONCILE_REQUESTED_ANNOTATION on the LLMAccess,
so the pass it causes still goes through the per-object update handler.
"""

from __future__ import annotations

import logging
from typing import Any

import kopf

from llmwarden.api.conditions import FINALIZER
from llmwarden.api.models import LLMAccess
from llmwarden.config import ControllerConfig
from llmwarden.context import Context
from llmwarden.controller.access import AccessReconciler
from llmwarden.controller.provider import ProviderReconciler
from llmwarden.eso.adapter import Adapter
from llmwarden.kube.client import LLM_ACCESS, LLM_PROVIDER, NAMESPACE, SECRET, ResourceClient
from llmwarden.kube.errors import ApiError, ConflictError, NotFoundError
from llmwarden.kube.util import controller_of
from llmwarden.provisioner.base import LABEL_MANAGED_BY, MANAGED_BY

logger = logging.getLogger(__name__)

ANNOTATION_PREFIX = "llmwarden.io"
RECONCILE_REQUESTED_ANNOTATION = "llmwarden.io/reconcile-requested-at"
WATCH_TIMEOUT_SECONDS = 300
CONFLICT_RETRY_SECONDS = 1


def build_memo(client: ResourceClient, ctx: Context, config: ControllerConfig, adapter: Adapter) -> kopf.Memo:
    """Shared state every handler receives as ``memo``."""
    return kopf.Memo(
        client=client,
        ctx=ctx,
        access=AccessReconciler(client, ctx, config, adapter),
        provider=ProviderReconciler(client, ctx, config),
    )


def configure_settings(settings: kopf.OperatorSettings, config: ControllerConfig) -> None:
    settings.persistence.finalizer = FINALIZER
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(prefix=ANNOTATION_PREFIX)
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(prefix=ANNOTATION_PREFIX)
    settings.posting.level = logging.WARNING
    settings.batching.worker_limit = config.max_concurrent_reconciles
    settings.watching.server_timeout = WATCH_TIMEOUT_SECONDS
    settings.networking.request_timeout = 30.0


# ─── Indices ─────────────────────────────────────────────────────────


def grants_by_provider(spec: dict, namespace: str, name: str, **_: Any) -> dict:
    return {spec.get("providerRef", {}).get("name", ""): (namespace, name)}


def grants_by_namespace(namespace: str, name: str, **_: Any) -> dict:
    return {namespace: (namespace, name)}


# ─── LLMAccess ───────────────────────────────────────────────────────


async def reconcile_access(namespace: str, name: str, memo: kopf.Memo, **_: Any) -> None:
    try:
        await memo.access.reconcile(namespace, name)
    except ConflictError as e:
        raise kopf.TemporaryError(f"Conflict writing LLMAccess: {e}", delay=CONFLICT_RETRY_SECONDS) from e


async def finalize_access(namespace: str, name: str, memo: kopf.Memo, **_: Any) -> None:
    await memo.access.finalize(namespace, name)


def rotation_due(body: dict, patch: kopf.Patch, memo: kopf.Memo, **_: Any) -> None:
    """Kick a grant once its nextRotation has passed."""
    access = LLMAccess.model_validate(dict(body))
    due = access.status.next_rotation
    if due is None or access.metadata.deletion_timestamp is not None:
        return
    now = memo.ctx.now()
    if due > now:
        return
    logger.info("Rotation due for LLMAccess %s/%s", access.namespace, access.name)
    annotations = patch.setdefault("metadata", {}).setdefault("annotations", {})
    annotations[RECONCILE_REQUESTED_ANNOTATION] = now.replace(microsecond=0).isoformat()


# ─── LLMProvider ─────────────────────────────────────────────────────


async def reconcile_provider(name: str, memo: kopf.Memo, **_: Any) -> None:
    await memo.provider.reconcile(name)


async def provider_changed(name: str, memo: kopf.Memo, grants_by_provider: kopf.Index, **_: Any) -> None:
    await kick(memo, grants_by_provider.get(name, ()))


# ─── Secondary watches ───────────────────────────────────────────────


async def namespace_event(event: dict, name: str, memo: kopf.Memo, grants_by_namespace: kopf.Index, **_: Any) -> None:
    if event.get("type") == "MODIFIED":
        await kick(memo, grants_by_namespace.get(name, ()))


async def owned_object_event(event: dict, body: dict, namespace: str, memo: kopf.Memo, **_: Any) -> None:
    if event.get("type") not in ("MODIFIED", "DELETED"):
        return
    owner = controller_of(dict(body))
    if owner and owner.get("kind") == LLM_ACCESS.kind and owner.get("apiVersion") == LLM_ACCESS.api_version:
        await kick(memo, [(namespace, owner["name"])])


async def kick(memo: kopf.Memo, keys) -> None:
    """Ask kopf for a fresh pass over each (namespace, name) LLMAccess."""
    stamp = memo.ctx.now().replace(microsecond=0).isoformat()
    body = {"metadata": {"annotations": {RECONCILE_REQUESTED_ANNOTATION: stamp}}}
    for namespace, name in keys:
        try:
            await memo.client.patch(LLM_ACCESS, name, body, namespace=namespace)
        except NotFoundError:
            continue
        except ApiError as e:
            logger.warning("Failed to requeue LLMAccess %s/%s: %s", namespace, name, e)


def build_registry(config: ControllerConfig, adapter: Adapter) -> kopf.OperatorRegistry:
    """Register every handler on a fresh registry."""
    registry = kopf.OperatorRegistry()
    access = dict(group=LLM_ACCESS.group, version=LLM_ACCESS.version, plural=LLM_ACCESS.plural)
    provider = dict(group=LLM_PROVIDER.group, version=LLM_PROVIDER.version, plural=LLM_PROVIDER.plural)
    managed = {LABEL_MANAGED_BY: MANAGED_BY}

    def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
        configure_settings(settings, config)

    kopf.on.startup(registry=registry)(configure)

    kopf.index(**access, registry=registry)(grants_by_provider)
    kopf.index(**access, registry=registry)(grants_by_namespace)

    for on in (kopf.on.create, kopf.on.update, kopf.on.resume):
        on(**access, registry=registry, backoff=config.error_backoff)(reconcile_access)
    kopf.on.delete(**access, registry=registry, backoff=config.error_backoff)(finalize_access)
    kopf.timer(**access, registry=registry, interval=config.rotation_check_interval)(rotation_due)

    for on in (kopf.on.create, kopf.on.update, kopf.on.resume):
        on(**provider, registry=registry, backoff=config.error_backoff)(reconcile_provider)
    kopf.timer(**provider, registry=registry, interval=config.provider_resync)(reconcile_provider)
    kopf.on.create(**provider, registry=registry)(provider_changed)
    kopf.on.update(**provider, registry=registry, field="spec")(provider_changed)
    kopf.on.delete(**provider, registry=registry, optional=True)(provider_changed)

    kopf.on.event(
        group=NAMESPACE.group or None, version=NAMESPACE.version, plural=NAMESPACE.plural, registry=registry
    )(namespace_event)
    for kind in (SECRET, adapter.kind):
        kopf.on.event(
            group=kind.group or None, version=kind.version, plural=kind.plural, labels=managed, registry=registry
        )(owned_object_event)
    return registry


async def run_operator(
    registry: kopf.OperatorRegistry,
    memo: kopf.Memo,
    config: ControllerConfig,
    *,
    ready_flag=None,
    stop_flag=None,
) -> None:
    """Run kopf until stop_flag is set."""
    namespace = config.watch_namespace
    await kopf.operator(
        registry=registry,
        memo=memo,
        clusterwide=not namespace,
        namespaces=[namespace] if namespace else [],
        standalone=True,
        ready_flag=ready_flag,
        stop_flag=stop_flag,
    )
