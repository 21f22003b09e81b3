"""Tests for the resource matcher."""

from __future__ import annotations

from typing import Any

import pytest
from conftest import cluster_object, intent_object

from dms_integration.errors import SelectorError
from dms_integration.matcher import match, selector_matches, should_skip, validate_selector
from dms_integration.models import AnnotationSkip, IntentRecord, LabelSelector, ManagedResource


def _intent(**kwargs: Any) -> IntentRecord:
    return IntentRecord.from_object(intent_object(**kwargs))


def _resource(**kwargs: Any) -> ManagedResource:
    return ManagedResource.from_object(cluster_object(**kwargs))


def _selector(obj: dict[str, Any]) -> LabelSelector:
    return LabelSelector.from_object(obj)


# --- match ---


class TestMatch:
    def test_selects_matching_labels(self):
        a = _resource(name="a")
        dev = _resource(name="dev", labels={"tier": "dev"})
        assert match(_intent(), [a, dev]) == [a]

    def test_skip_annotation_excludes(self):
        a = _resource(name="a")
        b = _resource(name="b", annotations={"skip-dms": "true"})
        intent = _intent(skips=[{"name": "skip-dms", "value": "true"}])
        assert match(intent, [a, b]) == [a]

    def test_skip_requires_value_match(self):
        b = _resource(name="b", annotations={"skip-dms": "false"})
        intent = _intent(skips=[{"name": "skip-dms", "value": "true"}])
        assert match(intent, [b]) == [b]

    def test_empty_selector_selects_all(self):
        resources = [_resource(name="a"), _resource(name="b", labels={})]
        assert match(_intent(selector={}), resources) == resources

    def test_no_resources(self):
        assert match(_intent(), []) == []

    def test_malformed_selector_raises(self):
        selector = {"matchExpressions": [{"key": "tier", "operator": "Near", "values": ["x"]}]}
        with pytest.raises(SelectorError, match="Near"):
            match(_intent(selector=selector), [_resource()])

    def test_matched_subset_of_input(self):
        resources = [
            _resource(name=f"c{i}", labels={"tier": tier}, annotations=ann)
            for i, (tier, ann) in enumerate([
                ("prod", {}), ("dev", {}), ("prod", {"skip-dms": "true"}), ("prod", {"x": "y"}),
            ])
        ]
        intent = _intent(skips=[{"name": "skip-dms", "value": "true"}])
        matched = match(intent, resources)
        assert [r.name for r in matched] == ["c0", "c3"]
        for r in matched:
            assert selector_matches(intent.selector, r.labels)
            assert not should_skip(intent.annotations_to_skip, r)


# --- selector_matches ---


class TestSelectorMatches:
    @pytest.mark.parametrize(("selector", "labels", "expected"), [
        ({"matchLabels": {"tier": "prod"}}, {"tier": "prod", "x": "y"}, True),
        ({"matchLabels": {"tier": "prod"}}, {"tier": "dev"}, False),
        ({"matchLabels": {"tier": "prod"}}, {}, False),
        ({"matchExpressions": [{"key": "tier", "operator": "In", "values": ["a", "b"]}]},
         {"tier": "b"}, True),
        ({"matchExpressions": [{"key": "tier", "operator": "In", "values": ["a"]}]},
         {}, False),
        ({"matchExpressions": [{"key": "tier", "operator": "NotIn", "values": ["a"]}]},
         {}, True),
        ({"matchExpressions": [{"key": "tier", "operator": "NotIn", "values": ["a"]}]},
         {"tier": "a"}, False),
        ({"matchExpressions": [{"key": "tier", "operator": "Exists"}]}, {"tier": ""}, True),
        ({"matchExpressions": [{"key": "tier", "operator": "Exists"}]}, {}, False),
        ({"matchExpressions": [{"key": "tier", "operator": "DoesNotExist"}]}, {}, True),
        ({"matchExpressions": [{"key": "tier", "operator": "DoesNotExist"}]},
         {"tier": "x"}, False),
    ])
    def test_operators(self, selector, labels, expected):
        assert selector_matches(_selector(selector), labels) is expected

    def test_labels_and_expressions_are_anded(self):
        selector = _selector({
            "matchLabels": {"tier": "prod"},
            "matchExpressions": [{"key": "region", "operator": "Exists"}],
        })
        assert selector_matches(selector, {"tier": "prod", "region": "eu"})
        assert not selector_matches(selector, {"tier": "prod"})


# --- validate_selector ---


class TestValidateSelector:
    def test_valid(self):
        validate_selector(_selector({
            "matchLabels": {"api.openshift.com/managed": "true"},
            "matchExpressions": [{"key": "tier", "operator": "In", "values": ["prod"]}],
        }))

    @pytest.mark.parametrize("selector", [
        {"matchExpressions": [{"key": "tier", "operator": "In"}]},
        {"matchExpressions": [{"key": "tier", "operator": "NotIn", "values": []}]},
        {"matchExpressions": [{"key": "tier", "operator": "Exists", "values": ["x"]}]},
        {"matchExpressions": [{"key": "tier", "operator": ""}]},
        {"matchLabels": {"bad key": "x"}},
        {"matchLabels": {"tier": "not/valid"}},
        {"matchLabels": {"/tier": "x"}},
        {"matchLabels": {"Bad_Prefix.com/tier": "x"}},
        {"matchLabels": {"tier": "x" * 64}},
    ])
    def test_invalid(self, selector):
        with pytest.raises(SelectorError):
            validate_selector(_selector(selector))

    def test_empty_value_allowed(self):
        validate_selector(_selector({"matchLabels": {"tier": ""}}))


# --- should_skip ---


class TestShouldSkip:
    def test_any_pair_matches(self):
        skips = [AnnotationSkip(name="a", value="1"), AnnotationSkip(name="b", value="2")]
        assert should_skip(skips, _resource(annotations={"b": "2"}))

    def test_no_skips(self):
        assert not should_skip([], _resource(annotations={"b": "2"}))
