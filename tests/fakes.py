"""
In-memory fakes and object builders for the llmwarden test suite.

InMemoryClient implements the ResourceClient protocol closely enough to test
ownership and finalizer behavior:
- resourceVersion conflicts on update
- status subresource for the llmwarden kinds
- finalizer-guarded deletion (deletionTimestamp first, removal later)
- owner-reference garbage collection on removal
"""

from __future__ import annotations

import base64
import copy
import itertools
import json
from datetime import UTC, datetime, timedelta

from llmwarden.kube.client import LLM_ACCESS, LLM_PROVIDER, ResourceKind
from llmwarden.kube.errors import AlreadyExistsError, ConflictError, NotFoundError

NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=UTC)

STATUS_KINDS = {LLM_ACCESS.kind, LLM_PROVIDER.kind, "ExternalSecret"}


def _ts(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def b64(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class InMemoryClient:
    """Dict-backed ResourceClient."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.clock = clock or FakeClock()
        self.objects: dict[tuple[str, str, str], tuple[ResourceKind, dict]] = {}
        self.errors: dict[tuple[str, str], Exception] = {}
        self.writes: list[tuple[str, str, str]] = []
        self._counter = itertools.count(1)

    # ─── Test helpers ────────────────────────────────────────────────

    def fail(self, verb: str, kind: ResourceKind, exc: Exception) -> None:
        """Make every ``verb`` call on ``kind`` raise ``exc``."""
        self.errors[(verb, kind.kind)] = exc

    def _check(self, verb: str, kind: ResourceKind) -> None:
        exc = self.errors.get((verb, kind.kind))
        if exc is not None:
            raise exc

    def _key(self, kind: ResourceKind, name: str, namespace: str | None) -> tuple[str, str, str]:
        return (kind.kind, (namespace or "") if kind.namespaced else "", name)

    def stored(self, kind: ResourceKind, name: str, namespace: str | None = None) -> dict | None:
        entry = self.objects.get(self._key(kind, name, namespace))
        return copy.deepcopy(entry[1]) if entry else None

    def writes_of(self, kind: ResourceKind) -> list[tuple[str, str, str]]:
        return [w for w in self.writes if w[1] == kind.kind]

    # ─── ResourceClient ──────────────────────────────────────────────

    async def get(self, kind: ResourceKind, name: str, namespace: str | None = None) -> dict:
        self._check("get", kind)
        entry = self.objects.get(self._key(kind, name, namespace))
        if entry is None:
            raise NotFoundError(f"{kind.kind} {namespace or ''}/{name} not found")
        return copy.deepcopy(entry[1])

    async def list(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[dict]:
        self._check("list", kind)
        wanted = dict(part.split("=", 1) for part in label_selector.split(",")) if label_selector else {}
        items = []
        for (kind_name, ns, _), (_, obj) in sorted(self.objects.items()):
            if kind_name != kind.kind:
                continue
            if namespace is not None and kind.namespaced and ns != namespace:
                continue
            labels = obj.get("metadata", {}).get("labels") or {}
            if any(labels.get(k) != v for k, v in wanted.items()):
                continue
            items.append(copy.deepcopy(obj))
        return items

    async def create(self, kind: ResourceKind, body: dict) -> dict:
        self._check("create", kind)
        obj = copy.deepcopy(body)
        obj.setdefault("apiVersion", kind.api_version)
        obj.setdefault("kind", kind.kind)
        meta = obj.setdefault("metadata", {})
        if not meta.get("name"):
            meta["name"] = f"{meta.get('generateName', 'obj-')}{next(self._counter):05d}"
        key = self._key(kind, meta["name"], meta.get("namespace"))
        if key in self.objects:
            raise AlreadyExistsError(f"{kind.kind} {key[1]}/{key[2]} already exists")
        meta["uid"] = f"uid-{next(self._counter)}"
        meta["resourceVersion"] = str(next(self._counter))
        meta["creationTimestamp"] = _ts(self.clock())
        meta["generation"] = 1
        self.objects[key] = (kind, obj)
        self.writes.append(("create", kind.kind, meta["name"]))
        return copy.deepcopy(obj)

    def _current(self, kind: ResourceKind, body: dict) -> tuple[tuple[str, str, str], dict]:
        meta = body.get("metadata", {})
        key = self._key(kind, meta.get("name", ""), meta.get("namespace"))
        entry = self.objects.get(key)
        if entry is None:
            raise NotFoundError(f"{kind.kind} {key[1]}/{key[2]} not found")
        current = entry[1]
        version = meta.get("resourceVersion")
        if version and version != current["metadata"]["resourceVersion"]:
            raise ConflictError(f"{kind.kind} {key[1]}/{key[2]} was modified")
        return key, current

    async def update(self, kind: ResourceKind, body: dict) -> dict:
        self._check("update", kind)
        key, current = self._current(kind, body)
        obj = copy.deepcopy(body)
        meta = obj.setdefault("metadata", {})
        for field in ("uid", "creationTimestamp", "deletionTimestamp"):
            if field in current["metadata"]:
                meta[field] = current["metadata"][field]
        meta["generation"] = current["metadata"].get("generation", 1)
        if kind.kind in STATUS_KINDS:
            obj.pop("status", None)
            if "status" in current:
                obj["status"] = copy.deepcopy(current["status"])
        if obj.get("spec") != current.get("spec"):
            meta["generation"] += 1
        meta["resourceVersion"] = str(next(self._counter))
        self.writes.append(("update", kind.kind, meta["name"]))
        if meta.get("deletionTimestamp") and not meta.get("finalizers"):
            self._remove(key)
            return copy.deepcopy(obj)
        self.objects[key] = (kind, obj)
        return copy.deepcopy(obj)

    async def update_status(self, kind: ResourceKind, body: dict) -> dict:
        self._check("update_status", kind)
        key, current = self._current(kind, body)
        obj = copy.deepcopy(current)
        obj["status"] = copy.deepcopy(body.get("status") or {})
        obj["metadata"]["resourceVersion"] = str(next(self._counter))
        self.objects[key] = (kind, obj)
        self.writes.append(("update_status", kind.kind, obj["metadata"]["name"]))
        return copy.deepcopy(obj)

    async def patch(self, kind: ResourceKind, name: str, body: dict, namespace: str | None = None) -> dict:
        self._check("patch", kind)
        key = self._key(kind, name, namespace)
        entry = self.objects.get(key)
        if entry is None:
            raise NotFoundError(f"{kind.kind} {namespace or ''}/{name} not found")
        obj = copy.deepcopy(entry[1])
        _merge(obj, body)
        obj["metadata"]["resourceVersion"] = str(next(self._counter))
        self.objects[key] = (kind, obj)
        self.writes.append(("patch", kind.kind, name))
        return copy.deepcopy(obj)

    async def delete(self, kind: ResourceKind, name: str, namespace: str | None = None) -> None:
        self._check("delete", kind)
        key = self._key(kind, name, namespace)
        entry = self.objects.get(key)
        if entry is None:
            raise NotFoundError(f"{kind.kind} {namespace or ''}/{name} not found")
        self.writes.append(("delete", kind.kind, name))
        meta = entry[1]["metadata"]
        if meta.get("finalizers"):
            meta.setdefault("deletionTimestamp", _ts(self.clock()))
            meta["resourceVersion"] = str(next(self._counter))
            return
        self._remove(key)

    def _remove(self, key: tuple[str, str, str]) -> None:
        _, obj = self.objects.pop(key)
        uid = obj["metadata"].get("uid")
        dependents = [
            other_key
            for other_key, (_, other) in self.objects.items()
            if any(ref.get("uid") == uid for ref in other.get("metadata", {}).get("ownerReferences") or [])
        ]
        for other_key in dependents:
            if other_key in self.objects:
                self._remove(other_key)



def _merge(target: dict, patch: dict) -> None:
    """RFC 7386 merge patch, in place."""
    for key, value in patch.items():
        if value is None:
            target.pop(key, None)
        elif isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


class EventLog:
    """Collects what EventRecorder would post through kopf."""

    def __init__(self) -> None:
        self.posted: list[dict] = []

    def post(self, obj: dict, *, type: str, reason: str, message: str) -> None:
        self.posted.append(
            {"object": copy.deepcopy(obj), "type": type, "reason": reason, "message": message}
        )

    def of(self, reason: str | None = None) -> list[dict]:
        return [e for e in self.posted if reason is None or e["reason"] == reason]


# ─── Admission patches ───────────────────────────────────────────────


def patch_ops(response) -> list[dict]:
    """Decoded JSONPatch operations of an AdmissionResponse."""
    if not response.patch:
        return []
    return json.loads(base64.b64decode(response.patch))


def apply_patch(doc: dict, ops: list[dict]) -> dict:
    """Apply add/replace/remove JSONPatch operations to a copy of ``doc``."""
    doc = copy.deepcopy(doc)
    for op in ops:
        tokens = [t.replace("~1", "/").replace("~0", "~") for t in op["path"].split("/")[1:]]
        if not tokens:
            doc = copy.deepcopy(op.get("value"))
            continue
        parent = doc
        for token in tokens[:-1]:
            parent = parent[int(token)] if isinstance(parent, list) else parent[token]
        last = tokens[-1]
        if isinstance(parent, list):
            if op["op"] == "remove":
                del parent[int(last)]
            elif last == "-":
                parent.append(copy.deepcopy(op["value"]))
            elif op["op"] == "add":
                parent.insert(int(last), copy.deepcopy(op["value"]))
            else:
                parent[int(last)] = copy.deepcopy(op["value"])
        elif op["op"] == "remove":
            del parent[last]
        else:
            parent[last] = copy.deepcopy(op["value"])
    return doc

# ─── Object builders ─────────────────────────────────────────────────


def provider_obj(
    name: str = "openai",
    *,
    auth: dict | None = None,
    allowed_models: list[str] | None = None,
    namespace_selector: dict | None = None,
    base_url: str | None = None,
    rotation: dict | None = None,
) -> dict:
    if auth is None:
        auth = {
            "type": "apiKey",
            "apiKey": {"secretRef": {"name": "openai-master", "namespace": "llmwarden-system", "key": "api-key"}},
        }
        if rotation is not None:
            auth["apiKey"]["rotation"] = rotation
    spec: dict = {"provider": "openai", "auth": auth}
    if allowed_models is not None:
        spec["allowedModels"] = allowed_models
    if namespace_selector is not None:
        spec["namespaceSelector"] = namespace_selector
    if base_url is not None:
        spec["endpoint"] = {"baseURL": base_url}
    return {
        "apiVersion": LLM_PROVIDER.api_version,
        "kind": LLM_PROVIDER.kind,
        "metadata": {"name": name},
        "spec": spec,
    }


def external_secret_auth(**overrides) -> dict:
    auth = {
        "type": "externalSecret",
        "externalSecret": {
            "store": {"name": "vault", "kind": "ClusterSecretStore"},
            "remoteRef": {"key": "llm/openai", "property": "api-key"},
        },
    }
    auth["externalSecret"].update(overrides)
    return auth


def access_obj(
    name: str = "openai-access",
    namespace: str = "team-a",
    *,
    provider: str = "openai",
    secret_name: str = "openai-credentials",
    models: list[str] | None = None,
    workload_selector: dict | None = None,
    env: list[dict] | None = None,
    volume: dict | None = None,
    rotation: str | None = None,
) -> dict:
    injection: dict = {}
    if env is None and volume is None:
        env = [{"name": "OPENAI_API_KEY", "secretKey": "apiKey"}]
    if env is not None:
        injection["env"] = env
    if volume is not None:
        injection["volume"] = volume
    spec: dict = {
        "providerRef": {"name": provider},
        "secretName": secret_name,
        "injection": injection,
    }
    if models is not None:
        spec["models"] = models
    if workload_selector is not None:
        spec["workloadSelector"] = workload_selector
    if rotation is not None:
        spec["rotation"] = {"interval": rotation}
    return {
        "apiVersion": LLM_ACCESS.api_version,
        "kind": LLM_ACCESS.kind,
        "metadata": {"name": name, "namespace": namespace},
        "spec": spec,
    }


def secret_obj(name: str, namespace: str, data: dict[str, str]) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": name, "namespace": namespace},
        "data": {k: b64(v) for k, v in data.items()},
    }


def namespace_obj(name: str, labels: dict[str, str] | None = None) -> dict:
    return {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": name, "labels": labels or {}}}
