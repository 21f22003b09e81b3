"""Distribution artifacts — ship the snitch URL into the managed cluster.

Two objects per (intent, cluster) pair, both named by ``artifact_name()``
in the ClusterDeployment's namespace and owned by it:

- an Opaque Secret holding the check-in URL under the configured key
- a Hive SyncSet copying that secret to the intent's target secret
  reference inside the managed cluster
"""

from __future__ import annotations

import base64
import logging
from typing import Any

from dms_integration.errors import NotFoundError
from dms_integration.models import IntentRecord, ManagedResource
from dms_integration.naming import artifact_name
from dms_integration.store.base import SECRET, SYNCSET, ObjectStore, owner_reference

logger = logging.getLogger(__name__)

DEFAULT_SNITCH_URL_KEY = "SNITCH_URL"
HIVE_API_VERSION = "hive.openshift.io/v1"


class ArtifactSynchronizer:
    """Creates and removes the secret/SyncSet pair for one cluster."""

    def __init__(self, store: ObjectStore, url_key: str = DEFAULT_SNITCH_URL_KEY) -> None:
        self._store = store
        self._url_key = url_key

    def artifacts_exist(
        self, intent: IntentRecord, resource: ManagedResource,
    ) -> tuple[bool, bool]:
        """Return ``(secret_exists, syncset_exists)``."""
        name = self._name(intent, resource)
        return (
            self._exists(SECRET, resource.namespace, name),
            self._exists(SYNCSET, resource.namespace, name),
        )

    def ensure_artifacts(
        self, intent: IntentRecord, resource: ManagedResource, check_in_url: str,
    ) -> None:
        """Create whichever of the secret and SyncSet is missing."""
        name = self._name(intent, resource)
        if not self._exists(SECRET, resource.namespace, name):
            logger.info("Creating secret %s/%s", resource.namespace, name)
            self._store.create(
                SECRET, build_secret(resource, name, check_in_url, self._url_key),
            )
        if not self._exists(SYNCSET, resource.namespace, name):
            logger.info("Creating SyncSet %s/%s", resource.namespace, name)
            self._store.create(SYNCSET, build_syncset(intent, resource, name))

    def teardown_artifacts(self, intent: IntentRecord, resource: ManagedResource) -> None:
        """Delete the SyncSet and secret; absent objects are fine."""
        name = self._name(intent, resource)
        for kind in (SYNCSET, SECRET):
            try:
                self._store.delete(kind, resource.namespace, name)
                logger.info("Deleted %s %s/%s", kind, resource.namespace, name)
            except NotFoundError:
                pass

    def _name(self, intent: IntentRecord, resource: ManagedResource) -> str:
        return artifact_name(resource.cluster_name, intent.snitch_name_postfix)

    def _exists(self, kind: str, namespace: str, name: str) -> bool:
        try:
            self._store.get(kind, namespace, name)
        except NotFoundError:
            return False
        return True


# --- Builders ---


def _owned_metadata(resource: ManagedResource, name: str) -> dict[str, Any]:
    return {
        "name": name,
        "namespace": resource.namespace,
        "ownerReferences": [
            owner_reference(HIVE_API_VERSION, "ClusterDeployment", resource.name, resource.uid),
        ],
    }


def build_secret(
    resource: ManagedResource, name: str, check_in_url: str, url_key: str,
) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "type": "Opaque",
        "metadata": _owned_metadata(resource, name),
        "data": {url_key: base64.b64encode(check_in_url.encode("utf-8")).decode("ascii")},
    }


def build_syncset(
    intent: IntentRecord, resource: ManagedResource, name: str,
) -> dict[str, Any]:
    return {
        "apiVersion": HIVE_API_VERSION,
        "kind": "SyncSet",
        "metadata": _owned_metadata(resource, name),
        "spec": {
            "clusterDeploymentRefs": [{"name": resource.name}],
            "resourceApplyMode": "Sync",
            "secretMappings": [
                {
                    "sourceRef": {"name": name, "namespace": resource.namespace},
                    "targetRef": {
                        "name": intent.target_secret_ref.name,
                        "namespace": intent.target_secret_ref.namespace,
                    },
                },
            ],
        },
    }
