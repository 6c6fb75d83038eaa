"""
Explicit per-operation context.

Every reconcile, provisioner call and admission request receives a Context
instead of reaching for module globals. It carries the logger, the metrics,
the event recorder and the clock, so tests can swap any of them.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from llmwarden.events import EventRecorder
from llmwarden.metrics import Metrics


def _utcnow() -> datetime:
    return datetime.now(UTC)


class _FieldsAdapter(logging.LoggerAdapter):
    """Appends bound key=value fields to each message."""

    def process(self, msg, kwargs):
        fields = " ".join(f"{k}={v}" for k, v in self.extra.items())
        return (f"{msg} [{fields}]" if fields else msg), kwargs


@dataclass(frozen=True)
class Context:
    metrics: Metrics
    recorder: EventRecorder
    logger: logging.Logger | logging.LoggerAdapter = field(
        default_factory=lambda: logging.getLogger("llmwarden")
    )
    clock: Callable[[], datetime] = _utcnow
    fields: dict[str, Any] = field(default_factory=dict)

    def now(self) -> datetime:
        return self.clock()

    def bind(self, **fields: Any) -> Context:
        """Copy of this context whose logger tags every line with ``fields``."""
        merged = {**self.fields, **fields}
        base = self.logger.logger if isinstance(self.logger, logging.LoggerAdapter) else self.logger
        return replace(self, logger=_FieldsAdapter(base, merged), fields=merged)
