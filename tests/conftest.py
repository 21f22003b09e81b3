"""Shared fixtures: object builders, an in-memory store and a fake snitch API."""

from __future__ import annotations

import base64
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import pytest

from dms_integration.errors import MonitorServiceError
from dms_integration.models import Snitch, SnitchSpec
from dms_integration.store import CLUSTER_DEPLOYMENT, INTENT, SECRET, MemoryObjectStore

API_KEY = "dms-api-key-123"


def intent_object(
    name: str = "dms-prod",
    namespace: str = "dms-operator",
    selector: dict[str, Any] | None = None,
    skips: list[dict[str, str]] | None = None,
    postfix: str = "",
    tags: list[str] | None = None,
    finalizers: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "apiVersion": "deadmanssnitch.managed.openshift.io/v1alpha1",
        "kind": "DeadmansSnitchIntegration",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "finalizers": finalizers or [],
        },
        "spec": {
            "clusterDeploymentSelector": (
                selector if selector is not None else {"matchLabels": {"tier": "prod"}}
            ),
            "clusterDeploymentAnnotationsToSkip": skips or [],
            "snitchNamePostFix": postfix,
            "tags": tags if tags is not None else ["production"],
            "targetSecretRef": {"name": "dms-secret", "namespace": "openshift-monitoring"},
            "dmsAPIKeySecretRef": {"name": "dms-api-key", "namespace": "dms-operator"},
        },
    }


def cluster_object(
    name: str = "a",
    namespace: str | None = None,
    labels: dict[str, str] | None = None,
    annotations: dict[str, str] | None = None,
    installed: bool = True,
    power_state: str | None = None,
    cluster_id: str | None = "cid-a",
    base_domain: str = "example.com",
    finalizers: list[str] | None = None,
) -> dict[str, Any]:
    spec: dict[str, Any] = {
        "clusterName": name,
        "baseDomain": base_domain,
        "installed": installed,
    }
    if power_state is not None:
        spec["powerState"] = power_state
    if cluster_id is not None:
        spec["clusterMetadata"] = {"clusterID": cluster_id}
    return {
        "apiVersion": "hive.openshift.io/v1",
        "kind": "ClusterDeployment",
        "metadata": {
            "name": name,
            "namespace": namespace or f"uhc-production-{name}123",
            "labels": labels if labels is not None else {"tier": "prod"},
            "annotations": annotations or {},
            "finalizers": finalizers or [],
        },
        "spec": spec,
    }


def api_key_secret(key: str = "deadmanssnitch-api-key") -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": "dms-api-key", "namespace": "dms-operator"},
        "data": {key: base64.b64encode(API_KEY.encode()).decode()},
    }


class FakeSnitchClient:
    """In-memory stand-in for the Dead Man's Snitch API."""

    def __init__(self) -> None:
        self.snitches: dict[str, Snitch] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_on: set[str] = set()
        self.delete_returns = True
        self.on_create: Callable[[SnitchSpec], None] | None = None
        self._seq = 0

    def add(self, name: str, status: str = "healthy", created_at: datetime | None = None) -> Snitch:
        self._seq += 1
        token = f"tok{self._seq}"
        snitch = Snitch(
            token=token,
            name=name,
            status=status,
            check_in_url=f"https://nosnch.in/{token}",
            created_at=created_at or datetime(2024, 1, 1, tzinfo=UTC),
        )
        self.snitches[token] = snitch
        return snitch

    def find_by_name(self, name: str) -> list[Snitch]:
        self._maybe_fail("find_by_name")
        self.calls.append(("find_by_name", name))
        return [s for s in self.snitches.values() if s.name == name]

    def create(self, spec: SnitchSpec) -> Snitch:
        self._maybe_fail("create")
        self.calls.append(("create", spec.name))
        if self.on_create is not None:
            self.on_create(spec)
        snitch = self.add(spec.name, status="pending")
        return snitch.model_copy(update={"tags": spec.tags, "notes": spec.notes})

    def check_in(self, snitch: Snitch) -> None:
        self._maybe_fail("check_in")
        self.calls.append(("check_in", snitch.name))
        stored = self.snitches[snitch.token]
        self.snitches[snitch.token] = stored.model_copy(update={"status": "healthy"})

    def delete(self, token: str) -> bool:
        self._maybe_fail("delete")
        self.calls.append(("delete", token))
        if not self.delete_returns:
            return False
        self.snitches.pop(token, None)
        return True

    def verbs(self, verb: str) -> list[str]:
        return [arg for v, arg in self.calls if v == verb]

    def _maybe_fail(self, op: str) -> None:
        if op in self.fail_on:
            raise MonitorServiceError(f"{op} failed: connection reset")


@pytest.fixture()
def snitch_api() -> FakeSnitchClient:
    return FakeSnitchClient()


@pytest.fixture()
def store() -> MemoryObjectStore:
    return MemoryObjectStore([(SECRET, api_key_secret())])


@pytest.fixture()
def seed(store: MemoryObjectStore) -> Callable[..., None]:
    """Seed the store with one intent and any number of clusters."""

    def _seed(intent: dict[str, Any] | None = None, *clusters: dict[str, Any]) -> None:
        store.create(INTENT, intent or intent_object())
        for cd in clusters:
            store.create(CLUSTER_DEPLOYMENT, cd)
        store.calls.clear()

    return _seed
