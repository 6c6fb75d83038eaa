"""
Status conditions and phase inference.

LLMAccess has no stored phase field. Its lifecycle phase is derived from the
condition set, the finalizers and the deletion timestamp, which makes every
reconciliation step independently re-checkable after a crash.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from llmwarden.api.models import Condition, LLMAccess

FINALIZER = "llmwarden.io/finalizer"


class ConditionStatus(StrEnum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class ConditionType(StrEnum):
    READY = "Ready"
    CREDENTIAL_PROVISIONED = "CredentialProvisioned"


class Reason(StrEnum):
    # LLMAccess
    PROVIDER_NOT_FOUND = "ProviderNotFound"
    NAMESPACE_NOT_ALLOWED = "NamespaceNotAllowed"
    MODEL_NOT_ALLOWED = "ModelNotAllowed"
    AUTH_TYPE_NOT_SUPPORTED = "AuthTypeNotSupported"
    SECRET_CREATED = "SecretCreated"
    SECRET_UPDATE_FAILED = "SecretUpdateFailed"
    CREDENTIAL_PROVISIONED = "CredentialProvisioned"
    RECONCILIATION_ERROR = "ReconciliationError"
    CLEANUP_FAILED = "CleanupFailed"
    CREDENTIAL_UNHEALTHY = "CredentialUnhealthy"

    # LLMProvider
    SECRET_FOUND = "SecretFound"
    SECRET_NOT_FOUND = "SecretNotFound"
    SECRET_GET_ERROR = "SecretGetError"
    SECRET_KEY_MISSING = "SecretKeyMissing"
    INVALID_CONFIG = "InvalidConfig"
    EXTERNAL_SECRET_CONFIGURED = "ExternalSecretConfigured"
    WORKLOAD_IDENTITY_NOT_VALIDATED = "WorkloadIdentityNotValidated"
    UNKNOWN_AUTH_TYPE = "UnknownAuthType"
    PROVIDER_HEALTHY = "ProviderHealthy"
    PROVIDER_UNHEALTHY = "ProviderUnhealthy"


# Rejections that only an edit of the grant, the provider or the namespace can clear.
PERMANENT_REASONS = frozenset({Reason.NAMESPACE_NOT_ALLOWED, Reason.MODEL_NOT_ALLOWED})

# Waiting on something that may appear without any edit.
WAITING_REASONS = frozenset({Reason.PROVIDER_NOT_FOUND, Reason.AUTH_TYPE_NOT_SUPPORTED})


class Phase(StrEnum):
    PENDING = "Pending"
    VALIDATING = "Validating"
    REJECTED = "Rejected"
    PROVISIONING = "Provisioning"
    READY = "Ready"
    DEGRADED = "Degraded"
    TERMINATING = "Terminating"


def find_condition(conditions: list[Condition], condition_type: str) -> Condition | None:
    for condition in conditions:
        if condition.type == condition_type:
            return condition
    return None


def set_condition(
    conditions: list[Condition],
    condition_type: str,
    status: str,
    reason: str,
    message: str,
    *,
    now: datetime,
    generation: int | None = None,
) -> bool:
    """Insert or update a condition in place.

    lastTransitionTime only moves when the status flips. Returns True if
    anything about the condition changed.
    """
    existing = find_condition(conditions, condition_type)
    if existing is None:
        conditions.append(
            Condition(
                type=condition_type,
                status=status,
                reason=reason,
                message=message,
                last_transition_time=now,
                observed_generation=generation,
            )
        )
        return True

    changed = False
    if existing.status != status:
        existing.status = status
        existing.last_transition_time = now
        changed = True
    if existing.reason != reason or existing.message != message:
        existing.reason = reason
        existing.message = message
        changed = True
    if existing.observed_generation != generation:
        existing.observed_generation = generation
        changed = True
    return changed


def infer_phase(access: LLMAccess) -> Phase:
    """Derive the lifecycle phase of an LLMAccess from its stored state."""
    if access.metadata.deletion_timestamp is not None:
        return Phase.TERMINATING

    conditions = access.status.conditions
    ready = find_condition(conditions, ConditionType.READY)
    provisioned = find_condition(conditions, ConditionType.CREDENTIAL_PROVISIONED)

    if ready is None:
        if FINALIZER in (access.metadata.finalizers or []):
            return Phase.VALIDATING
        return Phase.PENDING
    if ready.status == ConditionStatus.TRUE:
        return Phase.READY
    if ready.reason in PERMANENT_REASONS:
        return Phase.REJECTED
    if ready.reason in WAITING_REASONS:
        return Phase.VALIDATING
    if provisioned is not None and provisioned.status == ConditionStatus.FALSE:
        return Phase.DEGRADED
    return Phase.PROVISIONING
