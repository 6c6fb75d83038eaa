"""
Object store access: the ResourceClient protocol and its Kubernetes implementation.

Everything above this module works with plain JSON-shaped dicts and the
async ResourceClient protocol, so reconcilers, provisioners and the webhook
can be exercised against an in-memory store in tests.

KubeClient wraps the official ``kubernetes`` package's DynamicClient. Its
calls are blocking, so each one runs in a worker thread.

Usage:
    from llmwarden.kube.client import KubeClient, SECRET, load_kube_config

    load_kube_config()
    client = KubeClient()
    secret = await client.get(SECRET, "name", namespace="default")
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from operator import attrgetter
from typing import Any, Protocol

from llmwarden.kube.errors import AlreadyExistsError, ApiError, ConflictError, NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResourceKind:
    """Identifies a resource type on the API server."""

    api_version: str
    kind: str
    plural: str
    namespaced: bool = True

    @property
    def group(self) -> str:
        return self.api_version.rpartition("/")[0]

    @property
    def version(self) -> str:
        return self.api_version.rpartition("/")[2]

    def __str__(self) -> str:
        return f"{self.kind}.{self.api_version}"


SECRET = ResourceKind("v1", "Secret", "secrets")
NAMESPACE = ResourceKind("v1", "Namespace", "namespaces", namespaced=False)
LLM_PROVIDER = ResourceKind("llmwarden.io/v1alpha1", "LLMProvider", "llmproviders", namespaced=False)
LLM_ACCESS = ResourceKind("llmwarden.io/v1alpha1", "LLMAccess", "llmaccesses")


class ResourceClient(Protocol):
    """Minimal CRUD surface the operator needs from the API server."""

    async def get(self, kind: ResourceKind, name: str, namespace: str | None = None) -> dict:
        ...

    async def list(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[dict]:
        ...

    async def create(self, kind: ResourceKind, body: dict) -> dict:
        ...

    async def update(self, kind: ResourceKind, body: dict) -> dict:
        ...

    async def update_status(self, kind: ResourceKind, body: dict) -> dict:
        ...

    async def patch(self, kind: ResourceKind, name: str, body: dict, namespace: str | None = None) -> dict:
        """JSON merge patch."""
        ...

    async def delete(self, kind: ResourceKind, name: str, namespace: str | None = None) -> None:
        ...


def load_kube_config(config_file: str | None = None) -> None:
    """Load cluster credentials: explicit kubeconfig, in-cluster, then ~/.kube/config."""
    from kubernetes import config
    from kubernetes.config.config_exception import ConfigException

    if config_file:
        config.load_kube_config(config_file=config_file)
        logger.info("Loaded Kubernetes configuration from %s", config_file)
        return
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes configuration")
    except ConfigException:
        config.load_kube_config()
        logger.info("Loaded local Kubernetes configuration")


def _translate(exc: Exception, what: str, *, creating: bool = False) -> ApiError:
    status = getattr(exc, "status", None)
    message = f"{what}: {getattr(exc, 'summary', lambda: str(exc))()}"
    if status == 404:
        return NotFoundError(message)
    if status == 409:
        return AlreadyExistsError(message) if creating else ConflictError(message)
    return ApiError(message, status=status)


class KubeClient:
    """ResourceClient backed by kubernetes.dynamic.DynamicClient.

    Discovery and every API call are blocking, so both run in a worker
    thread; the resource cache is shared between those threads.
    """

    def __init__(self, api_client=None) -> None:
        from kubernetes import client
        from kubernetes.dynamic import DynamicClient

        self._dynamic = DynamicClient(api_client or client.ApiClient())
        self._resources: dict[ResourceKind, Any] = {}
        self._lock = threading.Lock()

    def _resource(self, kind: ResourceKind):
        from kubernetes.dynamic.exceptions import ResourceNotFoundError

        with self._lock:
            resource = self._resources.get(kind)
            if resource is None:
                try:
                    resource = self._dynamic.resources.get(api_version=kind.api_version, kind=kind.kind)
                except ResourceNotFoundError as e:
                    # CRD not installed: no object of this kind can exist.
                    raise NotFoundError(f"{kind} is not served by the API server") from e
                self._resources[kind] = resource
            return resource

    async def _call(self, kind: ResourceKind, what: str, method: str, *, creating: bool = False, **kwargs):
        """Run ``resource.<method>(**kwargs)`` for ``kind`` in a worker thread."""
        from kubernetes.dynamic.exceptions import DynamicApiError

        def call():
            return attrgetter(method)(self._resource(kind))(**kwargs)

        try:
            return await asyncio.to_thread(call)
        except DynamicApiError as e:
            raise _translate(e, what, creating=creating) from e

    async def get(self, kind: ResourceKind, name: str, namespace: str | None = None) -> dict:
        obj = await self._call(kind, f"get {kind} {namespace or ''}/{name}", "get", name=name, namespace=namespace)
        return obj.to_dict()

    async def list(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[dict]:
        kwargs: dict[str, Any] = {"namespace": namespace}
        if label_selector:
            kwargs["label_selector"] = label_selector
        result = await self._call(kind, f"list {kind}", "get", **kwargs)
        return result.to_dict().get("items") or []

    async def create(self, kind: ResourceKind, body: dict) -> dict:
        meta = body.get("metadata", {})
        obj = await self._call(
            kind,
            f"create {kind} {meta.get('namespace') or ''}/{meta.get('name')}",
            "create",
            body=body,
            namespace=meta.get("namespace"),
            creating=True,
        )
        return obj.to_dict()

    async def update(self, kind: ResourceKind, body: dict) -> dict:
        meta = body.get("metadata", {})
        obj = await self._call(
            kind,
            f"update {kind} {meta.get('namespace') or ''}/{meta.get('name')}",
            "replace",
            body=body,
            namespace=meta.get("namespace"),
        )
        return obj.to_dict()

    async def update_status(self, kind: ResourceKind, body: dict) -> dict:
        meta = body.get("metadata", {})
        obj = await self._call(
            kind,
            f"update status of {kind} {meta.get('namespace') or ''}/{meta.get('name')}",
            "status.replace",
            body=body,
            namespace=meta.get("namespace"),
        )
        return obj.to_dict()

    async def patch(self, kind: ResourceKind, name: str, body: dict, namespace: str | None = None) -> dict:
        obj = await self._call(
            kind,
            f"patch {kind} {namespace or ''}/{name}",
            "patch",
            name=name,
            namespace=namespace,
            body=body,
            content_type="application/merge-patch+json",
        )
        return obj.to_dict()

    async def delete(self, kind: ResourceKind, name: str, namespace: str | None = None) -> None:
        await self._call(kind, f"delete {kind} {namespace or ''}/{name}", "delete", name=name, namespace=namespace)
