"""
LLMAccess validating admission (fail-closed).

Rejects malformed grants before they are stored, so the controller only ever
sees specs it can act on. The same checks back ``llmwarden validate``.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from pydantic import ValidationError

from llmwarden.api.models import LLMAccess
from llmwarden.rotation import DurationError, parse_duration
from llmwarden.webhook.admission import AdmissionRequest, AdmissionResponse, allowed, denied

logger = logging.getLogger(__name__)

ENV_VAR_NAME = re.compile(r"[A-Z_][A-Z0-9_]*")

RESERVED_ENV_VARS = frozenset(
    {
        "KUBERNETES_SERVICE_HOST",
        "KUBERNETES_SERVICE_PORT",
        "HOSTNAME",
        "HOME",
    }
)


class AccessValidationError(ValueError):
    """An LLMAccess spec that must not be admitted."""

    def __init__(self, message: str, warnings: list[str] | None = None) -> None:
        super().__init__(message)
        self.warnings = warnings or []


def is_valid_env_var_name(name: str) -> bool:
    return ENV_VAR_NAME.fullmatch(name) is not None


class AccessValidator:
    """Create/update/delete checks for LLMAccess objects."""

    def validate_create(self, obj: dict[str, Any]) -> list[str]:
        """Return admission warnings, or raise AccessValidationError."""
        try:
            access = LLMAccess.model_validate(obj)
        except ValidationError as e:
            raise AccessValidationError(f"invalid LLMAccess: {e}") from e

        logger.debug("Validating LLMAccess %s/%s", access.namespace, access.name)
        warnings: list[str] = []
        spec = access.spec

        if not spec.provider_ref.name:
            raise AccessValidationError("spec.providerRef.name cannot be empty")
        if not spec.secret_name:
            raise AccessValidationError("spec.secretName cannot be empty")
        if not spec.injection.env and spec.injection.volume is None:
            raise AccessValidationError("spec.injection must define at least one of: env or volume")

        for mapping in spec.injection.env:
            if mapping.name in RESERVED_ENV_VARS:
                warnings.append(f"env var '{mapping.name}' overrides reserved Kubernetes variable")
            if not is_valid_env_var_name(mapping.name):
                raise AccessValidationError(
                    f"invalid env var name: {mapping.name} (must match [A-Z_][A-Z0-9_]*)", warnings
                )

        volume = spec.injection.volume
        if volume is not None:
            if not volume.mount_path:
                raise AccessValidationError("spec.injection.volume.mountPath cannot be empty", warnings)
            if not volume.mount_path.startswith("/"):
                raise AccessValidationError(
                    "spec.injection.volume.mountPath must be an absolute path", warnings
                )

        if access.rotation_override:
            try:
                parse_duration(access.rotation_override)
            except DurationError as e:
                raise AccessValidationError(f"spec.rotation.interval: {e}", warnings) from e

        return warnings

    def validate_update(self, old: dict[str, Any] | None, new: dict[str, Any]) -> list[str]:
        return self.validate_create(new)

    def validate_delete(self, obj: dict[str, Any] | None) -> list[str]:
        return []

    def handle(self, request: AdmissionRequest) -> AdmissionResponse:
        uid = request.uid
        try:
            if request.operation == "DELETE":
                warnings = self.validate_delete(request.old_object)
            elif request.operation == "UPDATE":
                warnings = self.validate_update(request.old_object, request.object or {})
            else:
                warnings = self.validate_create(request.object or {})
        except AccessValidationError as e:
            logger.info("Rejected LLMAccess %s/%s: %s", request.namespace, request.name, e)
            return denied(uid, str(e), warnings=e.warnings)
        return allowed(uid, warnings=warnings)
