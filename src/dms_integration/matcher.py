"""Which ClusterDeployments an intent applies to.

A cluster matches when its labels satisfy the intent's label selector
and none of its annotations equals any of the intent's skip pairs.
Selector semantics follow Kubernetes: ``matchLabels`` and every
``matchExpressions`` requirement must hold (AND); an empty selector
selects everything.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from dms_integration.errors import SelectorError
from dms_integration.models import (
    AnnotationSkip,
    IntentRecord,
    LabelSelector,
    LabelSelectorRequirement,
    ManagedResource,
    SelectorOperator,
)

_NAME = re.compile(r"^([A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?)?$")
_DNS_SUBDOMAIN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")


def match(
    intent: IntentRecord,
    resources: Iterable[ManagedResource],
) -> list[ManagedResource]:
    """Return the resources the intent selects and does not skip.

    Raises:
        SelectorError: If the intent's selector is malformed.
    """
    validate_selector(intent.selector)
    return [
        r for r in resources
        if selector_matches(intent.selector, r.labels)
        and not should_skip(intent.annotations_to_skip, r)
    ]


def should_skip(skips: list[AnnotationSkip], resource: ManagedResource) -> bool:
    """True if any annotation on *resource* equals any configured skip pair."""
    for key, value in resource.annotations.items():
        for skip in skips:
            if key == skip.name and value == skip.value:
                return True
    return False


def selector_matches(selector: LabelSelector, labels: dict[str, str]) -> bool:
    """Evaluate a (validated) label selector against a label set."""
    for key, value in selector.match_labels.items():
        if labels.get(key) != value:
            return False
    return all(_requirement_matches(req, labels) for req in selector.match_expressions)


def validate_selector(selector: LabelSelector) -> None:
    """Raise SelectorError if the selector cannot be evaluated."""
    for key, value in selector.match_labels.items():
        _validate_key(key)
        _validate_value(key, value)

    for req in selector.match_expressions:
        _validate_key(req.key)
        try:
            op = SelectorOperator(req.operator)
        except ValueError:
            raise SelectorError(
                f"{req.operator!r} is not a valid label selector operator"
            ) from None
        if op in (SelectorOperator.IN, SelectorOperator.NOT_IN):
            if not req.values:
                raise SelectorError(
                    f"values: must be specified when operator is {op} (key {req.key!r})"
                )
        elif req.values:
            raise SelectorError(
                f"values: may not be specified when operator is {op} (key {req.key!r})"
            )
        for value in req.values:
            _validate_value(req.key, value)


# --- Private helpers ---


def _requirement_matches(req: LabelSelectorRequirement, labels: dict[str, str]) -> bool:
    op = SelectorOperator(req.operator)
    if op == SelectorOperator.IN:
        return req.key in labels and labels[req.key] in req.values
    if op == SelectorOperator.NOT_IN:
        return req.key not in labels or labels[req.key] not in req.values
    if op == SelectorOperator.EXISTS:
        return req.key in labels
    return req.key not in labels


def _validate_key(key: str) -> None:
    prefix, sep, name = key.rpartition("/")
    if sep and (not prefix or len(prefix) > 253 or not _DNS_SUBDOMAIN.match(prefix)):
        raise SelectorError(f"invalid label key prefix in {key!r}")
    if not name or len(name) > 63 or not _NAME.match(name):
        raise SelectorError(f"invalid label key {key!r}")


def _validate_value(key: str, value: str) -> None:
    if len(value) > 63 or not _NAME.match(value):
        raise SelectorError(f"invalid label value {value!r} for key {key!r}")
