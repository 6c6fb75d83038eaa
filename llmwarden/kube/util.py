"""
Helpers for idempotent writes against a ResourceClient.

create_or_update() is the only write path the provisioners use: it reads the
current object, applies a mutate function to a deep copy and writes back only
if the result differs. Two passes with unchanged inputs therefore produce one
write at most.
"""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Any

import kopf

from llmwarden.kube.client import ResourceClient, ResourceKind
from llmwarden.kube.errors import AlreadyOwnedError, NotFoundError

logger = logging.getLogger(__name__)

LAST_APPLIED_ANNOTATION = "llmwarden.io/last-applied-spec"


class OperationResult(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


# Server-populated metadata ignored when comparing desired and stored objects.
_VOLATILE_METADATA = ("resourceVersion", "managedFields", "generation", "creationTimestamp", "uid")


def _comparable(obj: dict) -> dict:
    view = {k: v for k, v in obj.items() if k != "status"}
    meta = dict(view.get("metadata") or {})
    for key in _VOLATILE_METADATA:
        meta.pop(key, None)
    view["metadata"] = meta
    return view


async def create_or_update(
    client: ResourceClient,
    kind: ResourceKind,
    namespace: str | None,
    name: str,
    mutate: Callable[[dict], None],
) -> tuple[dict, OperationResult]:
    """Fetch-or-initialize ``namespace/name``, apply ``mutate`` and persist.

    ``mutate`` edits the object dict in place. A ConflictError from the write
    propagates; the caller's next pass starts over from the stored object.
    """
    try:
        current = await client.get(kind, name, namespace=namespace)
    except NotFoundError:
        current = None

    if current is None:
        metadata = {"name": name}
        if namespace:
            metadata["namespace"] = namespace
        obj = {"apiVersion": kind.api_version, "kind": kind.kind, "metadata": metadata}
        mutate(obj)
        created = await client.create(kind, obj)
        logger.debug("Created %s %s/%s", kind.kind, namespace or "", name)
        return created, OperationResult.CREATED

    desired = copy.deepcopy(current)
    mutate(desired)
    if _comparable(desired) == _comparable(current):
        return current, OperationResult.UNCHANGED

    updated = await client.update(kind, desired)
    logger.debug("Updated %s %s/%s", kind.kind, namespace or "", name)
    return updated, OperationResult.UPDATED


def controller_of(obj: dict) -> dict | None:
    """The owner reference marked controller=true, if any."""
    for ref in obj.get("metadata", {}).get("ownerReferences") or []:
        if ref.get("controller"):
            return ref
    return None


def is_controlled_by(obj: dict, owner_uid: str) -> bool:
    ref = controller_of(obj)
    return ref is not None and bool(owner_uid) and ref.get("uid") == owner_uid


def set_controller(obj: dict, owner: dict) -> None:
    """Make ``owner`` (a full object body) the controlling owner of ``obj``.

    A stale reference to the same owner (matched by uid) is replaced and
    unrelated non-controller references are kept.

    Raises:
        AlreadyOwnedError: another object is already the controller.
    """
    meta = obj.setdefault("metadata", {})
    uid = owner.get("metadata", {}).get("uid")
    existing = controller_of(obj)
    if existing is not None and existing.get("uid") != uid:
        raise AlreadyOwnedError(
            f"{obj.get('kind', 'object')} {meta.get('namespace', '')}/{meta.get('name')} "
            f"is already controlled by {existing.get('kind')} {existing.get('name')}"
        )
    meta["ownerReferences"] = [r for r in meta.get("ownerReferences") or [] if r.get("uid") != uid]
    kopf.append_owner_reference(obj, owner=owner, controller=True, block_owner_deletion=True)


def merge_labels(obj: dict, labels: dict[str, str]) -> None:
    """Add ``labels`` to the object without dropping labels set by others."""
    meta = obj.setdefault("metadata", {})
    merged = dict(meta.get("labels") or {})
    merged.update(labels)
    meta["labels"] = merged


def _three_way(current: Any, applied: Any, desired: Any) -> Any:
    if isinstance(desired, dict) and isinstance(current, dict):
        applied = applied if isinstance(applied, dict) else {}
        # Keys we never wrote are server defaults or someone else's: keep them.
        merged = {k: v for k, v in current.items() if k in desired or k not in applied}
        for key, value in desired.items():
            merged[key] = _three_way(current.get(key), applied.get(key), value)
        return merged
    if isinstance(desired, list) and isinstance(current, list) and len(desired) == len(current):
        if not (isinstance(applied, list) and len(applied) == len(desired)):
            applied = [None] * len(desired)
        return [_three_way(c, a, d) for c, a, d in zip(current, applied, desired)]
    return copy.deepcopy(desired)


def apply_spec(obj: dict, desired: dict) -> None:
    """Bring ``obj["spec"]`` to ``desired`` the way ``kubectl apply`` would.

    Fields the API server defaulted are kept, so an unchanged ``desired``
    leaves the object untouched. Fields llmwarden set on the previous write
    but no longer wants are removed; the previous write is remembered in
    the LAST_APPLIED_ANNOTATION annotation.
    """
    meta = obj.setdefault("metadata", {})
    annotations = dict(meta.get("annotations") or {})
    try:
        applied = json.loads(annotations.get(LAST_APPLIED_ANNOTATION) or "{}")
    except ValueError:
        logger.warning("Ignoring unreadable %s on %s", LAST_APPLIED_ANNOTATION, meta.get("name"))
        applied = {}
    obj["spec"] = _three_way(obj.get("spec") or {}, applied, desired)
    annotations[LAST_APPLIED_ANNOTATION] = json.dumps(desired, sort_keys=True, separators=(",", ":"))
    meta["annotations"] = annotations
