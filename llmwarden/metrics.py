"""
Prometheus metrics.

Collectors are created per Metrics instance on an explicit CollectorRegistry
rather than the process default, so each test can build its own and assert
on it without leaking samples into the next one.

Usage:
    from llmwarden.metrics import Metrics
    metrics = Metrics()
    metrics.webhook_injections.labels(namespace="team-a", provider="openai").inc()
    payload = metrics.render()
"""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


ACCESS_STATUSES = (
    "ready",
    "error",
    "provider_not_found",
    "namespace_not_allowed",
    "model_not_allowed",
    "auth_type_not_supported",
)


class Metrics:
    """All llmwarden collectors bound to one registry."""

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()

        self.llmaccess_total = Gauge(
            "llmwarden_llmaccess_total",
            "Total number of LLMAccess resources by provider, namespace, and status",
            ["provider", "namespace", "status"],
            registry=self.registry,
        )
        self.credential_rotations = Counter(
            "llmwarden_credential_rotations_total",
            "Total number of credential rotations performed",
            ["provider", "namespace"],
            registry=self.registry,
        )
        self.credential_rotation_errors = Counter(
            "llmwarden_credential_rotation_errors_total",
            "Total number of credential rotation errors",
            ["provider", "namespace", "error_type"],
            registry=self.registry,
        )
        self.credential_age = Gauge(
            "llmwarden_credential_age_seconds",
            "Age of the current credential in seconds",
            ["provider", "namespace", "name"],
            registry=self.registry,
        )
        self.credential_next_rotation = Gauge(
            "llmwarden_credential_next_rotation_seconds",
            "Time until next credential rotation in seconds",
            ["provider", "namespace", "name"],
            registry=self.registry,
        )
        self.provider_health = Gauge(
            "llmwarden_provider_health",
            "Health status of LLM providers (1 = healthy, 0 = unhealthy)",
            ["provider", "status"],
            registry=self.registry,
        )
        self.provider_access_count = Gauge(
            "llmwarden_provider_access_count",
            "Number of LLMAccess resources referencing each provider",
            ["provider"],
            registry=self.registry,
        )
        self.webhook_injections = Counter(
            "llmwarden_webhook_injections_total",
            "Total number of credential injections performed by the webhook",
            ["namespace", "provider"],
            registry=self.registry,
        )
        self.reconciliation_duration = Histogram(
            "llmwarden_reconciliation_duration_seconds",
            "Duration of reconciliation loops in seconds",
            ["controller", "result"],
            registry=self.registry,
        )
        self.secret_provisioning = Counter(
            "llmwarden_secret_provisioning_total",
            "Total number of secrets provisioned",
            ["provider", "namespace", "result"],
            registry=self.registry,
        )

    def set_access_status(self, provider: str, namespace: str, status: str) -> None:
        """Mark one status as current for (provider, namespace) and clear the others."""
        for known in ACCESS_STATUSES:
            if known != status:
                self.llmaccess_total.labels(provider=provider, namespace=namespace, status=known).set(0)
        self.llmaccess_total.labels(provider=provider, namespace=namespace, status=status).set(1)

    def set_provider_health(self, provider: str, healthy: bool) -> None:
        self.provider_health.labels(provider=provider, status="healthy").set(1 if healthy else 0)
        self.provider_health.labels(provider=provider, status="unhealthy").set(0 if healthy else 1)

    def sample(self, name: str, labels: dict[str, str] | None = None) -> float | None:
        """Current value of one sample, or None if it was never recorded."""
        return self.registry.get_sample_value(name, labels or {})

    def render(self) -> bytes:
        """Exposition-format payload for GET /metrics."""
        return generate_latest(self.registry)
