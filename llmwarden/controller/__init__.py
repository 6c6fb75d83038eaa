"""Reconcilers and the kopf handlers that drive them."""

from llmwarden.controller.access import AccessReconciler
from llmwarden.controller.operator import build_memo, build_registry, run_operator
from llmwarden.controller.provider import ProviderReconciler

__all__ = ["AccessReconciler", "ProviderReconciler", "build_memo", "build_registry", "run_operator"]
