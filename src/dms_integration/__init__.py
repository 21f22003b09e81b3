"""DMS Integration: Dead Man's Snitch heartbeat monitors for Hive clusters."""

__version__ = "0.1.0"

from dms_integration.artifacts import ArtifactSynchronizer
from dms_integration.config import OperatorConfig, find_config, load_config
from dms_integration.controller import Backoff, Controller, WorkQueue
from dms_integration.credentials import CredentialResolver, SecretCredentialResolver
from dms_integration.errors import (
    ConflictError,
    CredentialError,
    MonitorServiceError,
    NotFoundError,
    PermanentError,
    ReconcileError,
    RetryableError,
    SelectorError,
)
from dms_integration.finalizers import FinalizerManager
from dms_integration.matcher import match
from dms_integration.models import (
    IntentRecord,
    ManagedResource,
    PowerState,
    ReconcileRequest,
    ReconcileResult,
    ReconcileStatus,
    Snitch,
    SnitchSpec,
)
from dms_integration.naming import NamingStrategy, RestrictedNaming, StandardNaming
from dms_integration.reconciler import Reconciler
from dms_integration.snitch import DeadMansSnitchClient, MonitorClient, SnitchProvisioner
from dms_integration.store import MemoryObjectStore, ObjectStore

__all__ = [
    "ArtifactSynchronizer",
    "Backoff",
    "ConflictError",
    "Controller",
    "CredentialError",
    "CredentialResolver",
    "DeadMansSnitchClient",
    "FinalizerManager",
    "find_config",
    "IntentRecord",
    "load_config",
    "ManagedResource",
    "match",
    "MemoryObjectStore",
    "MonitorClient",
    "MonitorServiceError",
    "NamingStrategy",
    "NotFoundError",
    "ObjectStore",
    "OperatorConfig",
    "PermanentError",
    "PowerState",
    "ReconcileError",
    "Reconciler",
    "ReconcileRequest",
    "ReconcileResult",
    "ReconcileStatus",
    "RestrictedNaming",
    "RetryableError",
    "SecretCredentialResolver",
    "SelectorError",
    "Snitch",
    "SnitchProvisioner",
    "SnitchSpec",
    "StandardNaming",
    "WorkQueue",
    "__version__",
]
