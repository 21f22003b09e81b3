"""Finalizer lifecycle — guards that block removal until teardown is done.

The guard token ``dms.managed.openshift.io/deadmanssnitch-<intent>`` is
placed on the ClusterDeployment first and the intent second, so a crash
in between leaves at most the cluster guarded. A cluster carrying the
token is the authoritative signal that a snitch and artifacts may exist
for it.

Every mutation is a merge patch computed from the snapshot taken just
before it, pinned to the snapshot's resourceVersion; a concurrent write
surfaces as ``ConflictError`` and the pass is retried.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from dms_integration.models import IntentRecord, ManagedResource, ObjectMeta
from dms_integration.store.base import (
    CLUSTER_DEPLOYMENT,
    INTENT,
    ObjectStore,
    merge_patch,
    with_optimistic_lock,
)

logger = logging.getLogger(__name__)


def has_finalizer(meta: ObjectMeta, token: str) -> bool:
    return token in meta.finalizers


class FinalizerManager:
    """Adds and removes an intent's guard token."""

    def __init__(self, store: ObjectStore) -> None:
        self._store = store

    def ensure_guard(self, intent: IntentRecord, resource: ManagedResource) -> None:
        """Guard both the cluster and the intent. Idempotent."""
        token = intent.finalizer
        if not has_finalizer(resource.metadata, token):
            logger.info(
                "Adding finalizer %s to ClusterDeployment %s/%s",
                token, resource.namespace, resource.name,
            )
            self._set(CLUSTER_DEPLOYMENT, resource.metadata,
                      [*resource.metadata.finalizers, token])
        if not has_finalizer(intent.metadata, token):
            logger.info(
                "Adding finalizer %s to DeadmansSnitchIntegration %s/%s",
                token, intent.namespace, intent.name,
            )
            self._set(INTENT, intent.metadata, [*intent.metadata.finalizers, token])

    def remove_guard(self, intent: IntentRecord, resource: ManagedResource) -> None:
        """Drop the guard from the cluster. Idempotent."""
        token = intent.finalizer
        if not has_finalizer(resource.metadata, token):
            return
        logger.info(
            "Removing finalizer %s from ClusterDeployment %s/%s",
            token, resource.namespace, resource.name,
        )
        self._set(
            CLUSTER_DEPLOYMENT, resource.metadata,
            [f for f in resource.metadata.finalizers if f != token],
        )

    def release_intent(
        self, intent: IntentRecord, resources: Iterable[ManagedResource],
    ) -> bool:
        """Drop the intent's own guard once no cluster carries it.

        Returns ``True`` if the intent was patched.
        """
        token = intent.finalizer
        if not has_finalizer(intent.metadata, token):
            return False
        if any(has_finalizer(r.metadata, token) for r in resources):
            return False
        logger.info(
            "Removing finalizer %s from DeadmansSnitchIntegration %s/%s",
            token, intent.namespace, intent.name,
        )
        self._set(INTENT, intent.metadata, [f for f in intent.metadata.finalizers if f != token])
        return True

    def _set(self, kind: str, meta: ObjectMeta, finalizers: list[str]) -> None:
        before = {"metadata": {"finalizers": list(meta.finalizers)}}
        after = {"metadata": {"finalizers": finalizers}}
        patch = with_optimistic_lock(merge_patch(before, after), meta.resource_version)
        updated = self._store.patch(kind, meta.namespace, meta.name, patch)
        updated_meta = updated.get("metadata") or {}
        meta.finalizers = list(updated_meta.get("finalizers") or [])
        meta.resource_version = updated_meta.get("resourceVersion") or meta.resource_version
