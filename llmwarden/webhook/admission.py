"""
admission.k8s.io/v1 AdmissionReview wire format and JSONPatch generation.

Usage:
    review = AdmissionReview.model_validate(body)
    response = allowed(review.request.uid, "nothing to do")
    return review.respond(response).to_dict()
"""

from __future__ import annotations

import base64
import copy
import json
from typing import Any

from llmwarden.api.models import WireModel

ADMISSION_API_VERSION = "admission.k8s.io/v1"
PATCH_TYPE_JSON = "JSONPatch"


class AdmissionRequest(WireModel):
    uid: str
    kind: dict[str, str] | None = None
    resource: dict[str, str] | None = None
    name: str | None = None
    namespace: str | None = None
    operation: str = "CREATE"
    object: dict[str, Any] | None = None
    old_object: dict[str, Any] | None = None
    dry_run: bool | None = None


class AdmissionStatus(WireModel):
    code: int = 200
    message: str = ""
    reason: str | None = None


class AdmissionResponse(WireModel):
    uid: str
    allowed: bool
    status: AdmissionStatus | None = None
    patch: str | None = None
    patch_type: str | None = None
    warnings: list[str] | None = None


class AdmissionReview(WireModel):
    api_version: str = ADMISSION_API_VERSION
    kind: str = "AdmissionReview"
    request: AdmissionRequest | None = None
    response: AdmissionResponse | None = None

    def respond(self, response: AdmissionResponse) -> AdmissionReview:
        return AdmissionReview(api_version=self.api_version, kind=self.kind, response=response)


# ─── Responses ───────────────────────────────────────────────────────


def allowed(uid: str, message: str = "", *, warnings: list[str] | None = None) -> AdmissionResponse:
    return AdmissionResponse(
        uid=uid,
        allowed=True,
        status=AdmissionStatus(code=200, message=message),
        warnings=warnings or None,
    )


def denied(uid: str, message: str, *, warnings: list[str] | None = None) -> AdmissionResponse:
    return AdmissionResponse(
        uid=uid,
        allowed=False,
        status=AdmissionStatus(code=403, message=message, reason="Forbidden"),
        warnings=warnings or None,
    )


def errored(uid: str, code: int, message: str) -> AdmissionResponse:
    return AdmissionResponse(uid=uid, allowed=False, status=AdmissionStatus(code=code, message=message))


def patched(uid: str, ops: list[dict[str, Any]], message: str = "") -> AdmissionResponse:
    """Allow with a JSONPatch; an empty op list degrades to a plain allow."""
    if not ops:
        return allowed(uid, message)
    response = allowed(uid, message)
    response.patch = base64.b64encode(json.dumps(ops).encode()).decode()
    response.patch_type = PATCH_TYPE_JSON
    return response


# ─── JSONPatch ───────────────────────────────────────────────────────


def _escape(token: str | int) -> str:
    return str(token).replace("~", "~0").replace("/", "~1")


def json_patch(before: Any, after: Any, path: str = "") -> list[dict[str, Any]]:
    """Field-level JSONPatch turning ``before`` into ``after``.

    Dicts are compared key by key and lists of equal length element by
    element; anything else that differs is replaced whole.
    """
    if before == after:
        return []
    if isinstance(before, dict) and isinstance(after, dict):
        ops: list[dict[str, Any]] = []
        for key, value in after.items():
            child = f"{path}/{_escape(key)}"
            if key not in before:
                ops.append({"op": "add", "path": child, "value": copy.deepcopy(value)})
            else:
                ops.extend(json_patch(before[key], value, child))
        for key in before:
            if key not in after:
                ops.append({"op": "remove", "path": f"{path}/{_escape(key)}"})
        return ops
    if isinstance(before, list) and isinstance(after, list) and len(before) == len(after):
        ops = []
        for index, (old, new) in enumerate(zip(before, after)):
            ops.extend(json_patch(old, new, f"{path}/{index}"))
        return ops
    return [{"op": "replace", "path": path, "value": copy.deepcopy(after)}]


__all__ = [
    "ADMISSION_API_VERSION",
    "PATCH_TYPE_JSON",
    "AdmissionRequest",
    "AdmissionResponse",
    "AdmissionReview",
    "AdmissionStatus",
    "allowed",
    "denied",
    "errored",
    "json_patch",
    "patched",
]
