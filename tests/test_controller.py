"""Tests for the controller: work queue, backoff, event mapping and requeue policy."""

from __future__ import annotations

import pytest
from conftest import cluster_object, intent_object

from dms_integration.controller import (
    Backoff,
    Controller,
    WorkQueue,
    intents_for_cluster_deployment,
    intents_for_owned_object,
    request_for,
)
from dms_integration.models import ReconcileRequest, ReconcileResult, ReconcileStatus
from dms_integration.store import CLUSTER_DEPLOYMENT, INTENT, SECRET, SYNCSET, MemoryObjectStore
from dms_integration.store.base import owner_reference

PROD = ReconcileRequest(namespace="dms-operator", name="dms-prod")
DEV = ReconcileRequest(namespace="dms-operator", name="dms-dev")


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def queue(clock: FakeClock) -> WorkQueue:
    return WorkQueue(clock=clock)


# --- Backoff ---


class TestBackoff:
    def test_exponential(self):
        backoff = Backoff(base=1.0, cap=300.0)
        assert [backoff.next_delay("k") for _ in range(4)] == [1.0, 2.0, 4.0, 8.0]
        assert backoff.failures("k") == 4

    def test_capped(self):
        backoff = Backoff(base=1.0, cap=10.0)
        delays = [backoff.next_delay("k") for _ in range(6)]
        assert delays[-1] == 10.0

    def test_per_key(self):
        backoff = Backoff()
        backoff.next_delay("a")
        backoff.next_delay("a")
        assert backoff.next_delay("b") == 1.0

    def test_forget(self):
        backoff = Backoff()
        backoff.next_delay("k")
        backoff.forget("k")
        assert backoff.failures("k") == 0
        assert backoff.next_delay("k") == 1.0


# --- WorkQueue ---


class TestWorkQueue:
    def test_fifo_by_due_time(self, queue):
        queue.add(PROD)
        queue.add(DEV)
        assert queue.get(timeout=0) == PROD
        assert queue.get(timeout=0) == DEV
        assert queue.get(timeout=0) is None

    def test_deduplicates(self, queue):
        queue.add(PROD)
        queue.add(PROD)
        assert len(queue) == 1
        assert queue.get(timeout=0) == PROD
        assert queue.get(timeout=0) is None

    def test_delayed_until_due(self, queue, clock):
        queue.add(PROD, delay=5.0)
        assert queue.get(timeout=0) is None
        clock.now = 5.0
        assert queue.get(timeout=0) == PROD

    def test_earlier_due_time_wins(self, queue):
        queue.add(PROD, delay=30.0)
        queue.add(PROD)
        assert queue.get(timeout=0) == PROD
        assert len(queue) == 0

    def test_later_add_does_not_postpone(self, queue):
        queue.add(PROD)
        queue.add(PROD, delay=30.0)
        assert queue.get(timeout=0) == PROD

    def test_closed_returns_none(self, queue):
        queue.add(PROD)
        queue.close()
        assert queue.get(timeout=0) is None


# --- Event mapping ---


def _mapping_store() -> MemoryObjectStore:
    token = "dms.managed.openshift.io/deadmanssnitch-dms-legacy"
    return MemoryObjectStore([
        (INTENT, intent_object("dms-prod")),
        (INTENT, intent_object("dms-dev", selector={"matchLabels": {"tier": "dev"}})),
        (INTENT, intent_object("dms-legacy", selector={"matchLabels": {"tier": "legacy"}})),
        (CLUSTER_DEPLOYMENT, cluster_object("a", finalizers=[token])),
    ])


def _names(requests: list[ReconcileRequest]) -> list[str]:
    return sorted(r.name for r in requests)


class TestEventMapping:
    def test_request_for(self):
        assert request_for(intent_object()) == PROD

    def test_selecting_and_guarding_intents(self):
        store = _mapping_store()
        cd = store.get(CLUSTER_DEPLOYMENT, "uhc-production-a123", "a")
        assert _names(intents_for_cluster_deployment(store, cd)) == ["dms-legacy", "dms-prod"]

    def test_skipped_cluster_not_selected(self):
        store = MemoryObjectStore([
            (INTENT, intent_object(skips=[{"name": "skip-dms", "value": "true"}])),
        ])
        cd = cluster_object("a", annotations={"skip-dms": "true"})
        assert intents_for_cluster_deployment(store, cd) == []

    def test_invalid_intents_included(self):
        broken = intent_object("dms-broken")
        del broken["spec"]["targetSecretRef"]
        bad_selector = intent_object(
            "dms-bad", selector={"matchExpressions": [{"key": "t", "operator": "Near"}]},
        )
        store = MemoryObjectStore([(INTENT, broken), (INTENT, bad_selector)])
        cd = cluster_object("a", labels={"other": "x"})
        assert _names(intents_for_cluster_deployment(store, cd)) == ["dms-bad", "dms-broken"]

    def test_owned_object_maps_through_owner(self):
        store = _mapping_store()
        cd = store.get(CLUSTER_DEPLOYMENT, "uhc-production-a123", "a")
        ref = owner_reference("hive.openshift.io/v1", "ClusterDeployment", "a",
                              cd["metadata"]["uid"])
        syncset = {"metadata": {"name": "a-dms-secret", "namespace": "uhc-production-a123",
                                "ownerReferences": [ref]}}
        assert _names(intents_for_owned_object(store, syncset)) == ["dms-legacy", "dms-prod"]

    def test_unowned_object_ignored(self):
        store = _mapping_store()
        secret = {"metadata": {"name": "s", "namespace": "uhc-production-a123"}}
        assert intents_for_owned_object(store, secret) == []

    def test_owner_in_other_namespace_ignored(self):
        store = _mapping_store()
        cd = store.get(CLUSTER_DEPLOYMENT, "uhc-production-a123", "a")
        ref = owner_reference("hive.openshift.io/v1", "ClusterDeployment", "a",
                              cd["metadata"]["uid"])
        secret = {"metadata": {"name": "s", "namespace": "elsewhere", "ownerReferences": [ref]}}
        assert intents_for_owned_object(store, secret) == []


# --- Controller ---


class ScriptedReconcile:
    """Returns queued statuses in order, recording each request."""

    def __init__(self, *statuses: ReconcileStatus) -> None:
        self.statuses = list(statuses)
        self.requests: list[ReconcileRequest] = []

    def __call__(self, request: ReconcileRequest) -> ReconcileResult:
        self.requests.append(request)
        status = self.statuses.pop(0)
        error = None if status == ReconcileStatus.SUCCESS else "boom"
        return ReconcileResult(
            namespace=request.namespace, name=request.name, status=status, error=error,
        )


def _controller(reconcile, queue, store=None, **kwargs) -> Controller:
    return Controller(store or _mapping_store(), reconcile, queue=queue, **kwargs)


class TestHandleEvent:
    def test_intent_event(self, queue):
        controller = _controller(ScriptedReconcile(), queue)
        controller.handle_event(INTENT, "MODIFIED", intent_object("dms-dev"))
        assert queue.get(timeout=0) == DEV

    def test_cluster_event(self, queue):
        controller = _controller(ScriptedReconcile(), queue)
        controller.handle_event(CLUSTER_DEPLOYMENT, "ADDED", cluster_object("b"))
        assert queue.get(timeout=0) == PROD
        assert queue.get(timeout=0) is None

    def test_syncset_event(self, queue):
        store = _mapping_store()
        cd = store.get(CLUSTER_DEPLOYMENT, "uhc-production-a123", "a")
        ref = owner_reference("hive.openshift.io/v1", "ClusterDeployment", "a",
                              cd["metadata"]["uid"])
        syncset = {"metadata": {"name": "a-dms-secret", "namespace": "uhc-production-a123",
                                "ownerReferences": [ref]}}
        controller = _controller(ScriptedReconcile(), queue, store=store)

        controller.handle_event(SYNCSET, "DELETED", syncset)

        assert len(queue) == 2

    def test_error_event_ignored(self, queue):
        controller = _controller(ScriptedReconcile(), queue)
        controller.handle_event(SECRET, "ERROR", {"message": "too old resource version"})
        assert len(queue) == 0

    def test_resync_enqueues_all(self, queue):
        controller = _controller(ScriptedReconcile(), queue)
        assert controller.resync() == 3
        assert len(queue) == 3


class TestProcessNext:
    def test_empty_queue(self, queue):
        assert _controller(ScriptedReconcile(), queue).process_next(timeout=0) is None

    def test_success_resets_backoff(self, queue, clock):
        backoff = Backoff()
        reconcile = ScriptedReconcile(ReconcileStatus.RETRY, ReconcileStatus.SUCCESS)
        controller = _controller(reconcile, queue, backoff=backoff)
        queue.add(PROD)

        controller.process_next(timeout=0)
        clock.now = 1.0
        controller.process_next(timeout=0)

        assert backoff.failures(PROD.key) == 0
        assert len(queue) == 0

    def test_retry_requeues_with_backoff(self, queue, clock):
        reconcile = ScriptedReconcile(ReconcileStatus.RETRY, ReconcileStatus.RETRY,
                                      ReconcileStatus.SUCCESS)
        controller = _controller(reconcile, queue)
        queue.add(PROD)

        controller.process_next(timeout=0)
        assert controller.process_next(timeout=0) is None  # not due yet
        clock.now = 1.0
        controller.process_next(timeout=0)
        clock.now = 2.0
        assert controller.process_next(timeout=0) is None  # second delay is 2s
        clock.now = 3.0
        result = controller.process_next(timeout=0)

        assert result.status == ReconcileStatus.SUCCESS
        assert reconcile.requests == [PROD, PROD, PROD]

    def test_permanent_failure_dropped(self, queue):
        reconcile = ScriptedReconcile(ReconcileStatus.FAILED)
        controller = _controller(reconcile, queue)
        queue.add(PROD)

        result = controller.process_next(timeout=0)

        assert result.status == ReconcileStatus.FAILED
        assert len(queue) == 0

    def test_change_event_revives_failed_key(self, queue):
        reconcile = ScriptedReconcile(ReconcileStatus.FAILED, ReconcileStatus.SUCCESS)
        controller = _controller(reconcile, queue)
        queue.add(PROD)
        controller.process_next(timeout=0)

        controller.handle_event(INTENT, "MODIFIED", intent_object())

        assert controller.process_next(timeout=0).status == ReconcileStatus.SUCCESS


class TestRunLoop:
    def test_watch_loop_dispatches_until_stopped(self, queue):
        controller = _controller(ScriptedReconcile(), queue)

        def _watch(kind):
            yield "ADDED", intent_object("dms-dev")
            controller.stop()

        controller._watch = _watch
        controller._watch_loop(INTENT)

        assert len(queue) == 1

    def test_run_returns_after_stop(self, queue):
        controller = _controller(ScriptedReconcile(), queue)
        controller.stop()
        controller.run()
