"""Snitch and artifact naming.

Two strategies exist, picked once at startup:

- StandardNaming: the snitch is named after the cluster's public name
  (``<clusterName>.<baseDomain>[-<postfix>]``) and notes carry the
  cluster's external ID.
- RestrictedNaming (FedRAMP): both the snitch name and the cluster ID
  are the internal ID, the last ``-`` segment of the cluster namespace.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from dms_integration.errors import ClusterIDError
from dms_integration.models import ManagedResource

ARTIFACT_SUFFIX = "dms-secret"


@runtime_checkable
class NamingStrategy(Protocol):
    """Derives the snitch name and cluster ID for a ClusterDeployment."""

    def monitor_name(self, resource: ManagedResource, postfix: str = "") -> str:
        ...

    def cluster_id(self, resource: ManagedResource) -> str:
        ...


class StandardNaming:
    def monitor_name(self, resource: ManagedResource, postfix: str = "") -> str:
        name = f"{resource.cluster_name}.{resource.base_domain}"
        if postfix:
            name += f"-{postfix}"
        return name

    def cluster_id(self, resource: ManagedResource) -> str:
        return _require_cluster_id(resource)


class RestrictedNaming:
    def monitor_name(self, resource: ManagedResource, postfix: str = "") -> str:
        return internal_cluster_id(resource)

    def cluster_id(self, resource: ManagedResource) -> str:
        # the external ID must exist even though the internal one is reported
        _require_cluster_id(resource)
        return internal_cluster_id(resource)


def naming_strategy(restricted: bool) -> NamingStrategy:
    """Return the strategy for the configured deployment mode."""
    return RestrictedNaming() if restricted else StandardNaming()


def internal_cluster_id(resource: ManagedResource) -> str:
    return resource.namespace.split("-")[-1]


def artifact_name(cluster_name: str, postfix: str = "") -> str:
    """Name shared by the snitch URL secret and its SyncSet."""
    if postfix:
        return f"{cluster_name}-{postfix}-{ARTIFACT_SUFFIX}"
    return f"{cluster_name}-{ARTIFACT_SUFFIX}"


def _require_cluster_id(resource: ManagedResource) -> str:
    if not resource.cluster_id:
        raise ClusterIDError(
            f"Unable to get ClusterID from ClusterDeployment "
            f"{resource.namespace}/{resource.name}"
        )
    return resource.cluster_id
