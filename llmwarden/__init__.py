"""
llmwarden: declarative access to LLM provider credentials for Kubernetes workloads.

Platform operators publish LLMProvider resources; tenants request scoped
credentials with LLMAccess resources. The controller provisions a Secret per
LLMAccess and the pod webhook injects it into matching workloads.
"""

__version__ = "0.1.0"
