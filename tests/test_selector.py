"""Tests for llmwarden.selector: label selector matching."""

import pytest

from llmwarden.api.models import LabelSelector
from llmwarden.selector import SelectorError, matches, validate


def sel(**wire) -> LabelSelector:
    return LabelSelector.model_validate(wire)


class TestMatchLabels:
    def test_empty_selector_matches_everything(self):
        assert matches(sel(), {})
        assert matches(sel(), {"app": "x"})

    def test_all_pairs_required(self):
        selector = sel(matchLabels={"app": "x", "tier": "web"})
        assert matches(selector, {"app": "x", "tier": "web", "extra": "1"})
        assert not matches(selector, {"app": "x"})
        assert not matches(selector, {"app": "y", "tier": "web"})

    def test_none_labels(self):
        assert not matches(sel(matchLabels={"app": "x"}), None)


class TestMatchExpressions:
    def test_in(self):
        selector = sel(matchExpressions=[{"key": "env", "operator": "In", "values": ["prod", "staging"]}])
        assert matches(selector, {"env": "prod"})
        assert not matches(selector, {"env": "dev"})
        assert not matches(selector, {})

    def test_not_in_matches_missing_key(self):
        selector = sel(matchExpressions=[{"key": "env", "operator": "NotIn", "values": ["prod"]}])
        assert matches(selector, {})
        assert matches(selector, {"env": "dev"})
        assert not matches(selector, {"env": "prod"})

    def test_exists_and_does_not_exist(self):
        exists = sel(matchExpressions=[{"key": "team", "operator": "Exists"}])
        absent = sel(matchExpressions=[{"key": "team", "operator": "DoesNotExist"}])
        assert matches(exists, {"team": ""})
        assert not matches(exists, {})
        assert matches(absent, {})
        assert not matches(absent, {"team": "a"})

    def test_labels_and_expressions_combined(self):
        selector = sel(
            matchLabels={"app": "x"},
            matchExpressions=[{"key": "env", "operator": "In", "values": ["prod"]}],
        )
        assert matches(selector, {"app": "x", "env": "prod"})
        assert not matches(selector, {"app": "x", "env": "dev"})


class TestInvalidSelectors:
    @pytest.mark.parametrize(
        "requirement",
        [
            {"key": "env", "operator": "Equals", "values": ["a"]},
            {"key": "env", "operator": "In"},
            {"key": "env", "operator": "NotIn", "values": []},
            {"key": "env", "operator": "Exists", "values": ["a"]},
            {"key": "", "operator": "Exists"},
        ],
    )
    def test_rejected(self, requirement):
        selector = sel(matchExpressions=[requirement])
        with pytest.raises(SelectorError):
            validate(selector)
        with pytest.raises(SelectorError):
            matches(selector, {"env": "a"})
