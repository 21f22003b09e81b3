"""Object store backends.

Backends: MemoryObjectStore, KubernetesObjectStore.
"""

from dms_integration.store.base import (
    CLUSTER_DEPLOYMENT,
    INTENT,
    SECRET,
    SYNCSET,
    ObjectStore,
    merge_patch,
)
from dms_integration.store.kubernetes import KubernetesObjectStore
from dms_integration.store.memory import MemoryObjectStore

__all__ = [
    "CLUSTER_DEPLOYMENT",
    "INTENT",
    "KubernetesObjectStore",
    "MemoryObjectStore",
    "ObjectStore",
    "SECRET",
    "SYNCSET",
    "merge_patch",
]
