"""Core data models for DMS Integration.

Defines the schemas for:
- Intent records (DeadmansSnitchIntegration: which clusters need a snitch)
- Managed resources (Hive ClusterDeployments)
- Snitches (Dead Man's Snitch heartbeat monitors)
- Reconcile requests and results (controller input and output)

Kubernetes objects arrive as plain JSON dicts; each model exposes a
``from_object()`` constructor for that shape.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

FINALIZER_PREFIX = "dms.managed.openshift.io/deadmanssnitch-"

# --- Enums ---


class PowerState(enum.StrEnum):
    RUNNING = "Running"
    HIBERNATING = "Hibernating"


class SelectorOperator(enum.StrEnum):
    IN = "In"
    NOT_IN = "NotIn"
    EXISTS = "Exists"
    DOES_NOT_EXIST = "DoesNotExist"


class ReconcileStatus(enum.StrEnum):
    SUCCESS = "success"
    RETRY = "retry"
    FAILED = "failed"


# --- Object metadata ---


class ObjectMeta(BaseModel):
    """The subset of Kubernetes ``metadata`` this controller reads."""

    name: str
    namespace: str = ""
    uid: str = ""
    resource_version: str = ""
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    finalizers: list[str] = Field(default_factory=list)
    deletion_timestamp: str | None = None

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> ObjectMeta:
        meta = obj.get("metadata") or {}
        return cls(
            name=meta.get("name", ""),
            namespace=meta.get("namespace") or "",
            uid=meta.get("uid") or "",
            resource_version=meta.get("resourceVersion") or "",
            labels=meta.get("labels") or {},
            annotations=meta.get("annotations") or {},
            finalizers=list(meta.get("finalizers") or []),
            deletion_timestamp=meta.get("deletionTimestamp"),
        )


# --- Intent record ---


class LabelSelectorRequirement(BaseModel):
    """One ``matchExpressions`` entry of a label selector.

    The operator is kept as a raw string so that malformed selectors
    reach the matcher and fail there, not at parse time.
    """

    key: str
    operator: str
    values: list[str] = Field(default_factory=list)


class LabelSelector(BaseModel):
    """A Kubernetes label selector. Empty selects everything."""

    match_labels: dict[str, str] = Field(default_factory=dict)
    match_expressions: list[LabelSelectorRequirement] = Field(default_factory=list)

    @classmethod
    def from_object(cls, obj: dict[str, Any] | None) -> LabelSelector:
        obj = obj or {}
        return cls(
            match_labels=obj.get("matchLabels") or {},
            match_expressions=[
                LabelSelectorRequirement(
                    key=expr.get("key", ""),
                    operator=expr.get("operator", ""),
                    values=expr.get("values") or [],
                )
                for expr in obj.get("matchExpressions") or []
            ],
        )


class AnnotationSkip(BaseModel):
    """An annotation key/value pair that excludes a cluster from monitoring."""

    name: str
    value: str


class SecretRef(BaseModel):
    name: str
    namespace: str


class IntentRecord(BaseModel):
    """A DeadmansSnitchIntegration: clusters matching the selector need a snitch."""

    metadata: ObjectMeta
    selector: LabelSelector = Field(default_factory=LabelSelector)
    annotations_to_skip: list[AnnotationSkip] = Field(default_factory=list)
    snitch_name_postfix: str = ""
    tags: list[str] = Field(default_factory=list)
    target_secret_ref: SecretRef
    api_key_secret_ref: SecretRef

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> IntentRecord:
        spec = obj.get("spec") or {}
        return cls(
            metadata=ObjectMeta.from_object(obj),
            selector=LabelSelector.from_object(spec.get("clusterDeploymentSelector")),
            annotations_to_skip=[
                AnnotationSkip(name=s.get("name", ""), value=s.get("value", ""))
                for s in spec.get("clusterDeploymentAnnotationsToSkip") or []
            ],
            snitch_name_postfix=spec.get("snitchNamePostFix") or "",
            tags=spec.get("tags") or [],
            target_secret_ref=SecretRef(**(spec.get("targetSecretRef") or {})),
            api_key_secret_ref=SecretRef(**(spec.get("dmsAPIKeySecretRef") or {})),
        )

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def finalizer(self) -> str:
        """The guard token this intent places on itself and its clusters."""
        return FINALIZER_PREFIX + self.metadata.name

    @property
    def being_deleted(self) -> bool:
        return self.metadata.deletion_timestamp is not None


# --- Managed resource ---


class ManagedResource(BaseModel):
    """A Hive ClusterDeployment, as far as monitoring is concerned."""

    metadata: ObjectMeta
    cluster_name: str = ""
    base_domain: str = ""
    installed: bool = False
    power_state: PowerState = PowerState.RUNNING
    cluster_id: str | None = None

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> ManagedResource:
        spec = obj.get("spec") or {}
        cluster_metadata = spec.get("clusterMetadata") or {}
        power_state = (
            PowerState.HIBERNATING
            if spec.get("powerState") == PowerState.HIBERNATING
            else PowerState.RUNNING
        )
        return cls(
            metadata=ObjectMeta.from_object(obj),
            cluster_name=spec.get("clusterName") or "",
            base_domain=spec.get("baseDomain") or "",
            installed=bool(spec.get("installed", False)),
            power_state=power_state,
            cluster_id=cluster_metadata.get("clusterID") or None,
        )

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def uid(self) -> str:
        return self.metadata.uid

    @property
    def labels(self) -> dict[str, str]:
        return self.metadata.labels

    @property
    def annotations(self) -> dict[str, str]:
        return self.metadata.annotations

    @property
    def being_deleted(self) -> bool:
        return self.metadata.deletion_timestamp is not None

    @property
    def hibernating(self) -> bool:
        return self.power_state == PowerState.HIBERNATING


# --- Snitches ---


class SnitchSpec(BaseModel):
    """Payload for creating a snitch."""

    name: str
    interval: str = "15_minute"
    alert_type: str = "basic"
    tags: list[str] = Field(default_factory=list)
    notes: str = ""


class Snitch(BaseModel):
    """A snitch as returned by the Dead Man's Snitch API."""

    token: str
    href: str = ""
    name: str
    tags: list[str] = Field(default_factory=list)
    notes: str = ""
    status: str = ""
    check_in_url: str = ""
    checked_in_at: datetime | None = None
    interval: str = ""
    alert_type: str = ""
    created_at: datetime | None = None

    @field_validator("tags", mode="before")
    @classmethod
    def _null_tags(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("href", "notes", "status", "check_in_url", "interval", "alert_type",
                     mode="before")
    @classmethod
    def _null_strings(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def pending(self) -> bool:
        return self.status == "pending"


# --- Reconcile request/result ---


class ReconcileRequest(BaseModel):
    """Identity of the intent record a pass should reconcile."""

    namespace: str
    name: str

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    model_config = {"frozen": True}


class ReconcileResult(BaseModel):
    """Outcome of one reconciliation pass."""

    namespace: str
    name: str
    status: ReconcileStatus
    error: str | None = None

    @property
    def requeue(self) -> bool:
        return self.status == ReconcileStatus.RETRY

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
