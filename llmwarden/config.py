"""
Centralized configuration for llmwarden.

All configuration is loaded from environment variables with sensible defaults.

Usage:
    from llmwarden.config import get_config
    cfg = get_config()
    print(cfg.controller.max_concurrent_reconciles)   # 4
    print(cfg.webhook.port)                           # 9443
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta


@dataclass(frozen=True)
class ControllerConfig:
    """Handler workers, timers and retry delays (seconds)."""

    watch_namespace: str = ""  # empty = all namespaces
    max_concurrent_reconciles: int = 4
    provider_not_found_backoff: float = 30
    transient_backoff: float = 30
    unsupported_backoff: float = 300
    provider_resync: float = 300
    rotation_check_interval: float = 60
    error_backoff: float = 60  # retry delay after an unexpected handler error

    def backoff(self, name: str) -> timedelta:
        """Named backoff as a timedelta, e.g. ``backoff("transient")``."""
        return timedelta(seconds=getattr(self, f"{name}_backoff"))


@dataclass(frozen=True)
class WebhookConfig:
    """Admission webhook server."""

    host: str = "0.0.0.0"
    port: int = 9443
    tls_cert_file: str = ""
    tls_key_file: str = ""

    @property
    def tls_enabled(self) -> bool:
        return bool(self.tls_cert_file and self.tls_key_file)


@dataclass(frozen=True)
class Config:
    """Top-level llmwarden configuration."""

    kubeconfig: str = ""  # empty = in-cluster, then ~/.kube/config
    log_level: str = "INFO"
    controller: ControllerConfig = field(default_factory=ControllerConfig)
    webhook: WebhookConfig = field(default_factory=WebhookConfig)


# Singleton
_config: Config | None = None


def get_config() -> Config:
    """Get or create the singleton config from environment variables."""
    global _config
    if _config is not None:
        return _config
    _config = _load_from_env()
    return _config


def _load_from_env() -> Config:
    """Load configuration from environment variables."""
    controller = ControllerConfig(
        watch_namespace=os.environ.get("LLMWARDEN_WATCH_NAMESPACE", ""),
        max_concurrent_reconciles=int(os.environ.get("LLMWARDEN_MAX_CONCURRENT_RECONCILES", "4")),
        provider_not_found_backoff=float(os.environ.get("LLMWARDEN_PROVIDER_NOT_FOUND_BACKOFF", "30")),
        transient_backoff=float(os.environ.get("LLMWARDEN_TRANSIENT_BACKOFF", "30")),
        unsupported_backoff=float(os.environ.get("LLMWARDEN_UNSUPPORTED_BACKOFF", "300")),
        provider_resync=float(os.environ.get("LLMWARDEN_PROVIDER_RESYNC", "300")),
        rotation_check_interval=float(os.environ.get("LLMWARDEN_ROTATION_CHECK_INTERVAL", "60")),
        error_backoff=float(os.environ.get("LLMWARDEN_ERROR_BACKOFF", "60")),
    )

    webhook = WebhookConfig(
        host=os.environ.get("LLMWARDEN_WEBHOOK_HOST", "0.0.0.0"),
        port=int(os.environ.get("LLMWARDEN_WEBHOOK_PORT", "9443")),
        tls_cert_file=os.environ.get("LLMWARDEN_TLS_CERT_FILE", ""),
        tls_key_file=os.environ.get("LLMWARDEN_TLS_KEY_FILE", ""),
    )

    return Config(
        kubeconfig=os.environ.get("LLMWARDEN_KUBECONFIG", ""),
        log_level=os.environ.get("LLMWARDEN_LOG_LEVEL", "INFO").upper(),
        controller=controller,
        webhook=webhook,
    )


def reset_config() -> None:
    """Reset the singleton config (for testing)."""
    global _config
    _config = None
