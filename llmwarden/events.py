"""
Kubernetes Event recording.

Events are the operator-facing audit trail next to status conditions. They
go through kopf's event poster, which batches them in the background and
never fails the handler that emitted them.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum
from typing import Any

import kopf


class EventType(StrEnum):
    NORMAL = "Normal"
    WARNING = "Warning"


class EventRecorder:
    """Posts core/v1 Events about llmwarden objects.

    ``post`` has the signature of ``kopf.event`` and is only swapped in tests.
    """

    def __init__(self, post: Callable[..., None] | None = None) -> None:
        self._post = post or kopf.event

    def event(self, obj: Any, event_type: str, reason: str, message: str) -> None:
        if hasattr(obj, "to_dict"):
            obj = obj.to_dict()
        self._post(obj, type=str(event_type), reason=str(reason), message=message)

    def normal(self, obj: Any, reason: str, message: str) -> None:
        self.event(obj, EventType.NORMAL, reason, message)

    def warning(self, obj: Any, reason: str, message: str) -> None:
        self.event(obj, EventType.WARNING, reason, message)
