"""Object store protocol and merge-patch helpers.

The store is the declarative object API the controller reads from and
writes to. Objects are plain Kubernetes JSON dicts. Any object with
``get()``, ``list()``, ``create()``, ``patch()`` and ``delete()``
methods satisfies the protocol.
"""

from __future__ import annotations

import copy
from typing import Any, Protocol, runtime_checkable

INTENT = "DeadmansSnitchIntegration"
CLUSTER_DEPLOYMENT = "ClusterDeployment"
SYNCSET = "SyncSet"
SECRET = "Secret"

_MISSING = object()


@runtime_checkable
class ObjectStore(Protocol):
    """Protocol for object store backends.

    Every method raises ``NotFoundError`` for a missing object,
    ``ConflictError`` for a lost optimistic-concurrency race and
    ``StoreError`` for anything else.
    """

    def get(self, kind: str, namespace: str, name: str) -> dict[str, Any]:
        """Fetch a single object."""
        ...

    def list(self, kind: str, namespace: str | None = None) -> list[dict[str, Any]]:
        """List objects of *kind*, across all namespaces when *namespace* is None."""
        ...

    def create(self, kind: str, body: dict[str, Any]) -> dict[str, Any]:
        """Create an object; its namespace is taken from the body."""
        ...

    def patch(
        self, kind: str, namespace: str, name: str, patch: dict[str, Any],
    ) -> dict[str, Any]:
        """Apply a JSON merge patch and return the updated object."""
        ...

    def delete(self, kind: str, namespace: str, name: str) -> None:
        """Request deletion of an object."""
        ...


def merge_patch(before: dict[str, Any], after: dict[str, Any]) -> dict[str, Any]:
    """Compute the RFC 7386 merge patch that turns *before* into *after*.

    *before* must be the unmodified snapshot taken before mutation, so
    the patch carries only the fields this controller changed.
    """
    patch: dict[str, Any] = {}
    for key in before:
        if key not in after:
            patch[key] = None
    for key, value in after.items():
        old = before.get(key, _MISSING)
        if isinstance(value, dict) and isinstance(old, dict):
            sub = merge_patch(old, value)
            if sub:
                patch[key] = sub
        elif old is _MISSING or old != value:
            patch[key] = copy.deepcopy(value)
    return patch


def apply_merge_patch(target: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Apply an RFC 7386 merge patch, returning a new dict."""
    result = copy.deepcopy(target)
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        elif isinstance(value, dict):
            current = result.get(key)
            result[key] = apply_merge_patch(
                current if isinstance(current, dict) else {}, value,
            )
        else:
            result[key] = copy.deepcopy(value)
    return result


def with_optimistic_lock(patch: dict[str, Any], resource_version: str) -> dict[str, Any]:
    """Pin a patch to *resource_version* so a concurrent write causes a conflict."""
    if resource_version:
        patch.setdefault("metadata", {})["resourceVersion"] = resource_version
    return patch


def owner_reference(api_version: str, kind: str, name: str, uid: str) -> dict[str, Any]:
    """Build a controller owner reference; the store garbage-collects by uid."""
    return {
        "apiVersion": api_version,
        "kind": kind,
        "name": name,
        "uid": uid,
        "controller": True,
        "blockOwnerDeletion": True,
    }


def owner_uids(obj: dict[str, Any], kind: str | None = None) -> list[str]:
    """Return the uids of *obj*'s owners, optionally only those of *kind*."""
    refs = (obj.get("metadata") or {}).get("ownerReferences") or []
    return [
        ref.get("uid", "") for ref in refs
        if kind is None or ref.get("kind") == kind
    ]
