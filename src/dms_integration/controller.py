"""Controller — turns object changes into reconcile passes.

Watches intents, ClusterDeployments, SyncSets and secrets, maps each
change to the intents it can affect, and feeds a de-duplicating work
queue drained by a single worker:

- success: the key's backoff is reset
- retryable failure: the key is requeued with exponential backoff
- permanent failure: logged and dropped until the next change event

A periodic resync enqueues every intent so missed events heal.
"""

from __future__ import annotations

import heapq
import logging
import threading
import time
from collections.abc import Callable, Iterator
from typing import Any

from dms_integration.errors import SelectorError
from dms_integration.finalizers import has_finalizer
from dms_integration.matcher import selector_matches, should_skip, validate_selector
from dms_integration.models import (
    IntentRecord,
    ManagedResource,
    ReconcileRequest,
    ReconcileResult,
    ReconcileStatus,
)
from dms_integration.store.base import (
    CLUSTER_DEPLOYMENT,
    INTENT,
    SECRET,
    SYNCSET,
    ObjectStore,
    owner_uids,
)

logger = logging.getLogger(__name__)

WATCHED_KINDS = (INTENT, CLUSTER_DEPLOYMENT, SYNCSET, SECRET)

WatchFn = Callable[[str], Iterator[tuple[str, dict[str, Any]]]]


class Backoff:
    """Per-key exponential backoff: ``base * 2**failures``, capped."""

    def __init__(self, base: float = 1.0, cap: float = 300.0) -> None:
        self._base = base
        self._cap = cap
        self._failures: dict[str, int] = {}

    def next_delay(self, key: str) -> float:
        failures = self._failures.get(key, 0)
        self._failures[key] = failures + 1
        return min(self._base * (2 ** failures), self._cap)

    def failures(self, key: str) -> int:
        return self._failures.get(key, 0)

    def forget(self, key: str) -> None:
        self._failures.pop(key, None)


class WorkQueue:
    """Thread-safe delaying queue that holds each key at most once."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._heap: list[tuple[float, int, ReconcileRequest]] = []
        self._due: dict[ReconcileRequest, float] = {}
        self._seq = 0
        self._cond = threading.Condition()
        self._closed = False

    def add(self, request: ReconcileRequest, delay: float = 0.0) -> None:
        """Enqueue *request*; an earlier pending due time wins."""
        with self._cond:
            due = self._clock() + delay
            if request in self._due and self._due[request] <= due:
                return
            self._due[request] = due
            self._seq += 1
            heapq.heappush(self._heap, (due, self._seq, request))
            self._cond.notify()

    def get(self, timeout: float | None = None) -> ReconcileRequest | None:
        """Pop the next due request, waiting up to *timeout* seconds."""
        deadline = None if timeout is None else self._clock() + timeout
        with self._cond:
            while not self._closed:
                self._drop_stale()
                now = self._clock()
                if self._heap and self._heap[0][0] <= now:
                    _, _, request = heapq.heappop(self._heap)
                    del self._due[request]
                    return request
                wait = self._heap[0][0] - now if self._heap else None
                if deadline is not None:
                    remaining = deadline - now
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)
            return None

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __len__(self) -> int:
        with self._cond:
            return len(self._due)

    def _drop_stale(self) -> None:
        # entries superseded by an earlier due time for the same key
        while self._heap:
            due, _, request = self._heap[0]
            if self._due.get(request) == due:
                return
            heapq.heappop(self._heap)


# --- Event mapping ---


def request_for(obj: dict[str, Any]) -> ReconcileRequest:
    meta = obj.get("metadata") or {}
    return ReconcileRequest(namespace=meta.get("namespace", ""), name=meta.get("name", ""))


def intents_for_cluster_deployment(
    store: ObjectStore, obj: dict[str, Any],
) -> list[ReconcileRequest]:
    """Intents that select the cluster, or still guard it."""
    resource = ManagedResource.from_object(obj)
    requests = []
    for intent_obj in store.list(INTENT):
        try:
            intent = IntentRecord.from_object(intent_obj)
        except ValueError:
            # the intent's own pass reports the parse failure
            requests.append(request_for(intent_obj))
            continue
        if has_finalizer(resource.metadata, intent.finalizer) or _selects(intent, resource):
            requests.append(request_for(intent_obj))
    return requests


def intents_for_owned_object(
    store: ObjectStore, obj: dict[str, Any],
) -> list[ReconcileRequest]:
    """Map a SyncSet or secret to intents through its ClusterDeployment owner."""
    uids = set(owner_uids(obj, kind=CLUSTER_DEPLOYMENT))
    if not uids:
        return []
    namespace = (obj.get("metadata") or {}).get("namespace")
    requests: list[ReconcileRequest] = []
    for cd in store.list(CLUSTER_DEPLOYMENT, namespace=namespace):
        if (cd.get("metadata") or {}).get("uid") in uids:
            requests.extend(intents_for_cluster_deployment(store, cd))
    return requests


def _selects(intent: IntentRecord, resource: ManagedResource) -> bool:
    try:
        validate_selector(intent.selector)
    except SelectorError:
        # let the intent's pass surface the error
        return True
    return selector_matches(intent.selector, resource.labels) and not should_skip(
        intent.annotations_to_skip, resource,
    )


# --- Controller ---


class Controller:
    """Single-worker reconcile loop fed by watches and periodic resync."""

    def __init__(
        self,
        store: ObjectStore,
        reconcile: Callable[[ReconcileRequest], ReconcileResult],
        *,
        watch: WatchFn | None = None,
        resync_period: float = 600.0,
        backoff: Backoff | None = None,
        queue: WorkQueue | None = None,
    ) -> None:
        self._store = store
        self._reconcile = reconcile
        self._watch = watch
        self._resync_period = resync_period
        self._backoff = backoff or Backoff()
        self.queue = queue if queue is not None else WorkQueue()
        self._stop = threading.Event()

    def handle_event(self, kind: str, event_type: str, obj: dict[str, Any]) -> None:
        """Enqueue every intent a change to *obj* can affect."""
        if event_type == "ERROR":
            logger.warning("Watch error on %s: %s", kind, obj.get("message", obj))
            return
        if kind == INTENT:
            requests = [request_for(obj)]
        elif kind == CLUSTER_DEPLOYMENT:
            requests = intents_for_cluster_deployment(self._store, obj)
        else:
            requests = intents_for_owned_object(self._store, obj)
        for request in requests:
            logger.debug("%s %s event -> %s", event_type, kind, request.key)
            self.queue.add(request)

    def resync(self) -> int:
        """Enqueue every intent; return how many."""
        requests = [request_for(o) for o in self._store.list(INTENT)]
        for request in requests:
            self.queue.add(request)
        return len(requests)

    def process_next(self, timeout: float | None = None) -> ReconcileResult | None:
        """Reconcile the next due request, applying the requeue policy."""
        request = self.queue.get(timeout=timeout)
        if request is None:
            return None

        result = self._reconcile(request)
        if result.status == ReconcileStatus.SUCCESS:
            self._backoff.forget(request.key)
        elif result.status == ReconcileStatus.RETRY:
            delay = self._backoff.next_delay(request.key)
            logger.info("Requeueing %s in %.1fs", request.key, delay)
            self.queue.add(request, delay=delay)
        else:
            self._backoff.forget(request.key)
            logger.error("Dropping %s until it changes: %s", request.key, result.error)
        return result

    def run(self) -> None:
        """Run until ``stop()``: watch threads, resync timer and the worker."""
        if self._watch is not None:
            for kind in WATCHED_KINDS:
                threading.Thread(
                    target=self._watch_loop, args=(kind,), name=f"watch-{kind}", daemon=True,
                ).start()
        threading.Thread(target=self._resync_loop, name="resync", daemon=True).start()

        logger.info("Controller started")
        while not self._stop.is_set():
            self.process_next(timeout=1.0)
        logger.info("Controller stopped")

    def stop(self) -> None:
        self._stop.set()
        self.queue.close()

    # --- Private: background loops ---

    def _resync_loop(self) -> None:
        while not self._stop.is_set():
            try:
                count = self.resync()
                logger.debug("Resync enqueued %d intents", count)
            except Exception:
                logger.exception("Resync failed")
            self._stop.wait(self._resync_period)

    def _watch_loop(self, kind: str) -> None:
        assert self._watch is not None
        while not self._stop.is_set():
            try:
                for event_type, obj in self._watch(kind):
                    if self._stop.is_set():
                        return
                    self.handle_event(kind, event_type, obj)
            except Exception:
                logger.exception("Watch on %s failed, restarting", kind)
                self._stop.wait(5.0)
