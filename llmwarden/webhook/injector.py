"""
Pod credential injector (mutating admission, fail-open).

For every LLMAccess in the pod's namespace whose workloadSelector matches the
pod's labels, the configured env vars (secretKeyRef to the access Secret) and
the optional secret volume are added to every container and init container.
The result goes back to the API server as a field-level JSONPatch.

Injection happens once, at pod creation. Env vars carry the value resolved at
container start; a mounted volume follows later rotations of the Secret.
"""

from __future__ import annotations

import copy
from typing import Any

from pydantic import ValidationError

from llmwarden.api.models import LLMAccess
from llmwarden.context import Context
from llmwarden.kube.client import LLM_ACCESS, ResourceClient
from llmwarden.kube.errors import ApiError
from llmwarden.selector import SelectorError, matches
from llmwarden.webhook.admission import (
    AdmissionRequest,
    AdmissionResponse,
    allowed,
    errored,
    json_patch,
    patched,
)

INJECTED_PROVIDERS_ANNOTATION = "llmwarden.io/injected-providers"
INJECTION_STATUS_ANNOTATION = "llmwarden.io/injection-status"
INJECTION_STATUS_INJECTED = "injected"
VOLUME_PREFIX = "llmwarden-"

CONTAINER_FIELDS = ("containers", "initContainers")


class PodDecodeError(ValueError):
    pass


def decode_pod(obj: Any) -> dict[str, Any]:
    """Check the admission object looks like a Pod and return a private copy."""
    if not isinstance(obj, dict):
        raise PodDecodeError("request carries no object")
    if obj.get("kind", "Pod") != "Pod":
        raise PodDecodeError(f"expected a Pod, got {obj.get('kind')}")
    metadata = obj.get("metadata", {})
    spec = obj.get("spec")
    if not isinstance(metadata, dict) or not isinstance(spec, dict):
        raise PodDecodeError("pod metadata and spec must be objects")
    labels = metadata.get("labels") or {}
    if not isinstance(labels, dict):
        raise PodDecodeError("metadata.labels must be an object")
    for field in CONTAINER_FIELDS:
        containers = spec.get(field) or []
        if not isinstance(containers, list) or not all(isinstance(c, dict) for c in containers):
            raise PodDecodeError(f"spec.{field} must be a list of objects")
    return copy.deepcopy(obj)


def _containers(pod: dict[str, Any]) -> list[dict[str, Any]]:
    spec = pod["spec"]
    return [c for field in CONTAINER_FIELDS for c in (spec.get(field) or [])]


def inject_env(pod: dict[str, Any], access: LLMAccess) -> None:
    env = [
        {
            "name": mapping.name,
            "valueFrom": {
                "secretKeyRef": {"name": access.spec.secret_name, "key": mapping.secret_key},
            },
        }
        for mapping in access.spec.injection.env
    ]
    for container in _containers(pod):
        container.setdefault("env", []).extend(copy.deepcopy(env))


def inject_volume(pod: dict[str, Any], access: LLMAccess) -> None:
    volume = access.spec.injection.volume
    name = f"{VOLUME_PREFIX}{access.name}"
    pod["spec"].setdefault("volumes", []).append(
        {"name": name, "secret": {"secretName": access.spec.secret_name}}
    )
    for container in _containers(pod):
        container.setdefault("volumeMounts", []).append(
            {"name": name, "mountPath": volume.mount_path, "readOnly": volume.read_only}
        )


class PodInjector:
    """Handles admission requests for pod creation."""

    def __init__(self, client: ResourceClient, ctx: Context) -> None:
        self.client = client
        self.ctx = ctx

    def should_inject(self, pod: dict[str, Any], access: LLMAccess) -> bool:
        selector = access.spec.workload_selector
        if selector is None:
            return False
        try:
            return matches(selector, pod["metadata"].get("labels") or {})
        except SelectorError as e:
            self.ctx.logger.error(
                "Failed to parse workload selector of LLMAccess %s/%s: %s",
                access.namespace,
                access.name,
                e,
            )
            return False

    async def handle(self, request: AdmissionRequest) -> AdmissionResponse:
        uid = request.uid
        try:
            pod = decode_pod(request.object)
        except PodDecodeError as e:
            return errored(uid, 400, f"failed to decode pod: {e}")
        original = copy.deepcopy(pod)

        metadata = pod.setdefault("metadata", {})
        namespace = request.namespace or metadata.get("namespace") or ""
        pod_name = metadata.get("name") or metadata.get("generateName") or ""
        ctx = self.ctx.bind(pod=f"{namespace}/{pod_name}")
        ctx.logger.debug("Processing pod")

        try:
            raw_accesses = await self.client.list(LLM_ACCESS, namespace=namespace)
        except ApiError as e:
            ctx.logger.error("Failed to list LLMAccess resources: %s", e)
            return allowed(uid, "failed to list LLMAccess resources, allowing pod creation")

        if not raw_accesses:
            return allowed(uid, "no LLMAccess resources in namespace")

        providers: list[str] = []
        for raw in raw_accesses:
            try:
                access = LLMAccess.model_validate(raw)
            except ValidationError as e:
                ctx.logger.warning(
                    "Skipping malformed LLMAccess %s: %s", raw.get("metadata", {}).get("name"), e
                )
                continue
            if not self.should_inject(pod, access):
                continue

            provider = access.spec.provider_ref.name
            ctx.logger.info("Injecting credentials from LLMAccess %s (provider %s)", access.name, provider)
            if access.spec.injection.env:
                inject_env(pod, access)
            if access.spec.injection.volume is not None:
                inject_volume(pod, access)
            if provider not in providers:
                providers.append(provider)

        if not providers:
            return allowed(uid, "no matching LLMAccess resources")

        annotations = metadata.get("annotations") or {}
        metadata["annotations"] = {
            **annotations,
            INJECTED_PROVIDERS_ANNOTATION: ",".join(providers),
            INJECTION_STATUS_ANNOTATION: INJECTION_STATUS_INJECTED,
        }
        for provider in providers:
            ctx.metrics.webhook_injections.labels(namespace=namespace, provider=provider).inc()

        ctx.logger.info("Injected credentials for providers %s", ",".join(providers))
        return patched(uid, json_patch(original, pod), f"injected credentials for {','.join(providers)}")
