"""MemoryObjectStore — an in-process object store.

Emulates the parts of the Kubernetes API server the controller relies
on: resource versions with optimistic locking on patch, finalizers
blocking removal, and garbage collection of owned objects. Useful for
dry runs and tests. Every write is recorded in ``calls``.
"""

from __future__ import annotations

import copy
import itertools
import uuid
from datetime import UTC, datetime
from typing import Any

from dms_integration.errors import ConflictError, NotFoundError
from dms_integration.store.base import apply_merge_patch, owner_uids

_Key = tuple[str, str, str]


class MemoryObjectStore:
    """Object store backed by a dict."""

    def __init__(self, objects: list[tuple[str, dict[str, Any]]] | None = None) -> None:
        self._objects: dict[_Key, dict[str, Any]] = {}
        self._versions = itertools.count(1)
        self.calls: list[tuple[str, str, str]] = []
        for kind, body in objects or []:
            self._insert(kind, body)

    # --- ObjectStore protocol ---

    def get(self, kind: str, namespace: str, name: str) -> dict[str, Any]:
        obj = self._objects.get((kind, namespace, name))
        if obj is None:
            raise NotFoundError(kind, namespace, name)
        return copy.deepcopy(obj)

    def list(self, kind: str, namespace: str | None = None) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(obj)
            for (k, ns, _), obj in sorted(self._objects.items())
            if k == kind and (namespace is None or ns == namespace)
        ]

    def create(self, kind: str, body: dict[str, Any]) -> dict[str, Any]:
        meta = body.get("metadata") or {}
        key = (kind, meta.get("namespace", ""), meta.get("name", ""))
        if key in self._objects:
            raise ConflictError(f"{kind} {key[1]}/{key[2]} already exists")
        self.calls.append(("create", kind, f"{key[1]}/{key[2]}"))
        return copy.deepcopy(self._insert(kind, body))

    def patch(
        self, kind: str, namespace: str, name: str, patch: dict[str, Any],
    ) -> dict[str, Any]:
        key = (kind, namespace, name)
        current = self._objects.get(key)
        if current is None:
            raise NotFoundError(kind, namespace, name)

        expected = (patch.get("metadata") or {}).get("resourceVersion")
        actual = current["metadata"]["resourceVersion"]
        if expected is not None and expected != actual:
            raise ConflictError(
                f"Operation cannot be fulfilled on {kind} {namespace}/{name}: "
                f"the object has been modified"
            )

        self.calls.append(("patch", kind, f"{namespace}/{name}"))
        updated = apply_merge_patch(current, patch)
        updated["metadata"]["resourceVersion"] = str(next(self._versions))
        self._objects[key] = updated
        if updated["metadata"].get("deletionTimestamp") and not updated["metadata"].get(
            "finalizers"
        ):
            self._remove(key)
        return copy.deepcopy(updated)

    def delete(self, kind: str, namespace: str, name: str) -> None:
        key = (kind, namespace, name)
        obj = self._objects.get(key)
        if obj is None:
            raise NotFoundError(kind, namespace, name)
        self.calls.append(("delete", kind, f"{namespace}/{name}"))
        if obj["metadata"].get("finalizers"):
            obj["metadata"].setdefault(
                "deletionTimestamp", datetime.now(tz=UTC).isoformat(),
            )
            obj["metadata"]["resourceVersion"] = str(next(self._versions))
            return
        self._remove(key)

    # --- Inspection helpers ---

    def exists(self, kind: str, namespace: str, name: str) -> bool:
        return (kind, namespace, name) in self._objects

    def writes(self, verb: str | None = None, kind: str | None = None) -> list[str]:
        """Keys of recorded writes, filtered by verb and kind."""
        return [
            key for v, k, key in self.calls
            if (verb is None or v == verb) and (kind is None or k == kind)
        ]

    # --- Private ---

    def _insert(self, kind: str, body: dict[str, Any]) -> dict[str, Any]:
        obj = copy.deepcopy(body)
        meta = obj.setdefault("metadata", {})
        meta.setdefault("namespace", "")
        meta.setdefault("uid", str(uuid.uuid4()))
        meta["resourceVersion"] = str(next(self._versions))
        self._objects[(kind, meta["namespace"], meta["name"])] = obj
        return obj

    def _remove(self, key: _Key) -> None:
        obj = self._objects.pop(key)
        uid = obj["metadata"].get("uid")
        # cascade to dependents, as the garbage collector would
        for dep_key, dep in list(self._objects.items()):
            if dep_key in self._objects and uid in owner_uids(dep):
                self._remove(dep_key)
