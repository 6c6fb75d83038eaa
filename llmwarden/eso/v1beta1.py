"""ESO ``external-secrets.io/v1beta1`` adapter."""

from __future__ import annotations

from typing import Any

from llmwarden.eso.adapter import Adapter, ExternalSecretSpec, SyncStatus
from llmwarden.kube.client import ResourceKind

V1BETA1_KIND = ResourceKind("external-secrets.io/v1beta1", "ExternalSecret", "externalsecrets")


class V1Beta1Adapter(Adapter):
    """Field mapping for ESO v1beta1 (https://external-secrets.io/latest/api/externalsecret/)."""

    @property
    def kind(self) -> ResourceKind:
        return V1BETA1_KIND

    def build(
        self,
        namespace: str,
        name: str,
        labels: dict[str, str],
        spec: ExternalSecretSpec,
    ) -> dict:
        return {
            "apiVersion": V1BETA1_KIND.api_version,
            "kind": V1BETA1_KIND.kind,
            "metadata": {"name": name, "namespace": namespace, "labels": dict(labels)},
            "spec": self.build_spec(spec),
        }

    def build_spec(self, spec: ExternalSecretSpec) -> dict[str, Any]:
        data = []
        for entry in spec.data:
            remote_ref: dict[str, Any] = {"key": entry.remote_ref.key}
            if entry.remote_ref.property:
                remote_ref["property"] = entry.remote_ref.property
            if entry.remote_ref.version:
                remote_ref["version"] = entry.remote_ref.version
            data.append({"secretKey": entry.secret_key, "remoteRef": remote_ref})

        return {
            "refreshInterval": spec.refresh_interval,
            "secretStoreRef": {"name": spec.store_ref.name, "kind": spec.store_ref.kind},
            "target": {
                "name": spec.target.name,
                "creationPolicy": str(spec.target.creation_policy),
            },
            "data": data,
        }

    def parse_sync_status(self, obj: dict | None) -> SyncStatus:
        if obj is None:
            return SyncStatus(False, "ExternalSecret is nil")

        conditions = (obj.get("status") or {}).get("conditions")
        if not isinstance(conditions, list):
            return SyncStatus(False, "no status conditions yet; ESO may still be syncing")

        for condition in conditions:
            if not isinstance(condition, dict) or condition.get("type") != "Ready":
                continue
            return SyncStatus(condition.get("status") == "True", condition.get("message") or "")

        return SyncStatus(False, "Ready condition not found in ExternalSecret status")
