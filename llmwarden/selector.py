"""
Label selector matching.

Implements the Kubernetes ``metav1.LabelSelector`` semantics used by
LLMProvider.namespaceSelector and LLMAccess.workloadSelector:

    matchLabels       every key/value pair must be present
    matchExpressions  In, NotIn, Exists, DoesNotExist

An empty selector matches every label set. Whether a *missing* selector
matches is the caller's decision (namespaceSelector: allow all;
workloadSelector: inject nothing).
"""

from __future__ import annotations

from collections.abc import Mapping

from llmwarden.api.models import LabelSelector, LabelSelectorRequirement


class SelectorError(ValueError):
    """Raised for a selector that cannot be evaluated."""


_OPERATORS = {"In", "NotIn", "Exists", "DoesNotExist"}


def _check_requirement(req: LabelSelectorRequirement) -> None:
    if not req.key:
        raise SelectorError("selector requirement has an empty key")
    if req.operator not in _OPERATORS:
        raise SelectorError(f"{req.operator!r} is not a valid label selector operator")
    if req.operator in ("In", "NotIn") and not req.values:
        raise SelectorError(f"values must be non-empty for operator {req.operator} on key {req.key!r}")
    if req.operator in ("Exists", "DoesNotExist") and req.values:
        raise SelectorError(f"values must be empty for operator {req.operator} on key {req.key!r}")


def _requirement_matches(req: LabelSelectorRequirement, labels: Mapping[str, str]) -> bool:
    present = req.key in labels
    if req.operator == "Exists":
        return present
    if req.operator == "DoesNotExist":
        return not present
    if req.operator == "In":
        return present and labels[req.key] in req.values
    # NotIn also matches when the key is absent
    return not present or labels[req.key] not in req.values


def validate(selector: LabelSelector) -> None:
    """Raise SelectorError if the selector is malformed."""
    for req in selector.match_expressions or []:
        _check_requirement(req)


def matches(selector: LabelSelector, labels: Mapping[str, str] | None) -> bool:
    """Return True if ``labels`` satisfy ``selector``.

    Raises:
        SelectorError: if the selector contains an invalid requirement.
    """
    validate(selector)
    labels = labels or {}

    for key, value in (selector.match_labels or {}).items():
        if labels.get(key) != value:
            return False

    return all(_requirement_matches(req, labels) for req in selector.match_expressions or [])
