"""Admission webhooks: pod credential injection and LLMAccess validation."""

from llmwarden.webhook.app import create_webhook_app, serve_webhook
from llmwarden.webhook.injector import PodInjector
from llmwarden.webhook.validator import AccessValidationError, AccessValidator

__all__ = [
    "AccessValidationError",
    "AccessValidator",
    "PodInjector",
    "create_webhook_app",
    "serve_webhook",
]
