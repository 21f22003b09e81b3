"""Reconciler — converges one DeadmansSnitchIntegration per pass.

Every pass re-reads the intent, the API key and all ClusterDeployments,
then walks each cluster through its lifecycle:

  unmanaged -> guarded, pending install -> guarded, monitored
  guarded, monitored <-> guarded, hibernating (snitch and artifacts removed)
  any guarded state -> unguarded (cluster unselected or deleted, or intent deleted)

A guard is placed before any snitch is created and removed only after the
snitch and artifacts are gone. The first error aborts the pass; work done
earlier in the pass is kept and the next pass picks up from there.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from dms_integration.artifacts import ArtifactSynchronizer
from dms_integration.config import OperatorConfig
from dms_integration.credentials import CredentialResolver, SecretCredentialResolver
from dms_integration.errors import NotFoundError, PermanentError, classify
from dms_integration.finalizers import FinalizerManager, has_finalizer
from dms_integration.matcher import match
from dms_integration.models import (
    IntentRecord,
    ManagedResource,
    ReconcileRequest,
    ReconcileResult,
    ReconcileStatus,
)
from dms_integration.naming import NamingStrategy, naming_strategy
from dms_integration.snitch.client import ClientFactory, MonitorClient, default_client_factory
from dms_integration.snitch.provisioner import SnitchProvisioner
from dms_integration.store.base import CLUSTER_DEPLOYMENT, INTENT, ObjectStore

logger = logging.getLogger(__name__)


class Reconciler:
    """Reconciles DeadmansSnitchIntegrations against ClusterDeployments.

    All collaborators are injected; nothing is cached between passes.
    """

    def __init__(
        self,
        store: ObjectStore,
        credentials: CredentialResolver,
        client_factory: ClientFactory,
        naming: NamingStrategy,
        *,
        artifacts: ArtifactSynchronizer | None = None,
        finalizers: FinalizerManager | None = None,
        provisioner: SnitchProvisioner | None = None,
    ) -> None:
        self._store = store
        self._credentials = credentials
        self._client_factory = client_factory
        self._artifacts = artifacts or ArtifactSynchronizer(store)
        self._finalizers = finalizers or FinalizerManager(store)
        self._provisioner = provisioner or SnitchProvisioner(naming)

    @classmethod
    def from_config(
        cls,
        store: ObjectStore,
        config: OperatorConfig,
        client_factory: ClientFactory | None = None,
    ) -> Reconciler:
        """Wire a reconciler from configuration; the naming mode is fixed here."""
        naming = naming_strategy(config.restricted_mode)
        return cls(
            store,
            SecretCredentialResolver(store, key=config.api_key_secret_key),
            client_factory or default_client_factory(config.api_base_url, config.api_timeout),
            naming,
            artifacts=ArtifactSynchronizer(store, url_key=config.snitch_url_key),
            provisioner=SnitchProvisioner(
                naming,
                interval=config.snitch_interval,
                alert_type=config.snitch_alert_type,
                runbook_url=config.runbook_url,
            ),
        )

    def reconcile(self, request: ReconcileRequest) -> ReconcileResult:
        """Run one pass for *request*.

        Never raises for reconciliation failures; those are captured in
        the result's status (``retry`` or ``failed``) and error fields.
        """
        logger.info("Reconciling DeadmansSnitchIntegration %s", request.key)
        try:
            self._reconcile(request)
        except Exception as exc:
            if classify(exc):
                logger.warning("Reconcile of %s failed, will retry: %s", request.key, exc)
                status = ReconcileStatus.RETRY
            else:
                logger.error("Reconcile of %s failed permanently: %s", request.key, exc)
                status = ReconcileStatus.FAILED
            return ReconcileResult(
                namespace=request.namespace,
                name=request.name,
                status=status,
                error=str(exc),
            )

        logger.info("Reconcile of DeadmansSnitchIntegration %s complete", request.key)
        return ReconcileResult(
            namespace=request.namespace,
            name=request.name,
            status=ReconcileStatus.SUCCESS,
        )

    # --- Private: pass ---

    def _reconcile(self, request: ReconcileRequest) -> None:
        try:
            obj = self._store.get(INTENT, request.namespace, request.name)
        except NotFoundError:
            # already gone; owned objects are garbage-collected
            logger.info("DeadmansSnitchIntegration %s not found", request.key)
            return
        intent = _parse_intent(obj)

        client = self._client_factory(self._credentials.resolve(intent))
        resources = [
            ManagedResource.from_object(o) for o in self._store.list(CLUSTER_DEPLOYMENT)
        ]

        if intent.being_deleted:
            self._delete_intent(intent, resources, client)
            return

        matched = {(r.namespace, r.name) for r in match(intent, resources)}
        for resource in resources:
            self._converge(intent, resource, (resource.namespace, resource.name) in matched,
                           client)
        self._finalizers.release_intent(intent, resources)

    def _delete_intent(
        self,
        intent: IntentRecord,
        resources: list[ManagedResource],
        client: MonitorClient,
    ) -> None:
        logger.info("DeadmansSnitchIntegration %s/%s is being deleted",
                    intent.namespace, intent.name)
        for resource in resources:
            if has_finalizer(resource.metadata, intent.finalizer):
                self._teardown(intent, resource, client)
        self._finalizers.release_intent(intent, resources)

    def _converge(
        self,
        intent: IntentRecord,
        resource: ManagedResource,
        matched: bool,
        client: MonitorClient,
    ) -> None:
        if not matched or resource.being_deleted:
            if has_finalizer(resource.metadata, intent.finalizer):
                self._teardown(intent, resource, client)
            return

        if not resource.installed:
            logger.debug("ClusterDeployment %s/%s not installed yet, skipping",
                         resource.namespace, resource.name)
            return

        self._finalizers.ensure_guard(intent, resource)
        secret_exists, syncset_exists = self._artifacts.artifacts_exist(intent, resource)

        if resource.hibernating:
            if secret_exists or syncset_exists:
                logger.info("ClusterDeployment %s/%s is hibernating, removing snitch",
                            resource.namespace, resource.name)
                self._suspend(intent, resource, client)
            return

        if secret_exists and syncset_exists:
            return
        snitch = self._provisioner.ensure_monitor(intent, resource, client)
        self._artifacts.ensure_artifacts(intent, resource, snitch.check_in_url)

    def _suspend(
        self, intent: IntentRecord, resource: ManagedResource, client: MonitorClient,
    ) -> None:
        """Remove the snitch and artifacts, keeping the guard."""
        self._provisioner.delete_monitors(intent, resource, client)
        self._artifacts.teardown_artifacts(intent, resource)

    def _teardown(
        self, intent: IntentRecord, resource: ManagedResource, client: MonitorClient,
    ) -> None:
        """Remove the snitch and artifacts, then the guard."""
        logger.info("Removing snitch resources for ClusterDeployment %s/%s",
                    resource.namespace, resource.name)
        self._suspend(intent, resource, client)
        self._finalizers.remove_guard(intent, resource)


def _parse_intent(obj: dict) -> IntentRecord:
    try:
        return IntentRecord.from_object(obj)
    except ValidationError as exc:
        meta = obj.get("metadata") or {}
        raise PermanentError(
            f"Invalid DeadmansSnitchIntegration {meta.get('namespace')}/{meta.get('name')}: "
            f"{exc}"
        ) from exc
