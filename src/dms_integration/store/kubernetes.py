"""KubernetesObjectStore — the object store backed by the kubernetes client.

Custom kinds (intents, ClusterDeployments, SyncSets) go through
``CustomObjectsApi``; secrets go through ``CoreV1Api``. Supports
kubeconfig file, kubeconfig context, or in-cluster config.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

from kubernetes import client, config, watch
from kubernetes.client.exceptions import ApiException

from dms_integration.errors import ConflictError, NotFoundError, StoreError
from dms_integration.store.base import CLUSTER_DEPLOYMENT, INTENT, SECRET, SYNCSET


@dataclass(frozen=True)
class KindMapping:
    """Maps a kind to its API group, version and resource plural."""

    group: str
    version: str
    plural: str
    core: bool = False

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version


KIND_MAP: dict[str, KindMapping] = {
    INTENT: KindMapping(
        group="deadmanssnitch.managed.openshift.io",
        version="v1alpha1",
        plural="deadmanssnitchintegrations",
    ),
    CLUSTER_DEPLOYMENT: KindMapping(
        group="hive.openshift.io",
        version="v1",
        plural="clusterdeployments",
    ),
    SYNCSET: KindMapping(
        group="hive.openshift.io",
        version="v1",
        plural="syncsets",
    ),
    SECRET: KindMapping(group="", version="v1", plural="secrets", core=True),
}


def build_api_client(
    kubeconfig: str | None = None,
    context: str | None = None,
    in_cluster: bool = False,
) -> client.ApiClient:
    """Build a kubernetes ApiClient from in-cluster config or a kubeconfig."""
    if in_cluster:
        config.load_incluster_config()
        return client.ApiClient()

    kwargs: dict[str, Any] = {}
    if kubeconfig:
        kwargs["config_file"] = kubeconfig
    if context:
        kwargs["context"] = context
    config.load_kube_config(**kwargs)
    return client.ApiClient()


class KubernetesObjectStore:
    """Object store that talks to a Kubernetes API server."""

    def __init__(
        self,
        api_client: Any | None = None,
        *,
        custom_api: Any | None = None,
        core_api: Any | None = None,
    ) -> None:
        self._api_client = api_client if api_client is not None else client.ApiClient()
        self._custom = custom_api or client.CustomObjectsApi(self._api_client)
        self._core = core_api or client.CoreV1Api(self._api_client)

    def get(self, kind: str, namespace: str, name: str) -> dict[str, Any]:
        m = _mapping(kind)
        if m.core:
            obj = self._call(kind, namespace, name, self._core.read_namespaced_secret,
                             name=name, namespace=namespace)
            return self._to_dict(obj)
        return self._call(
            kind, namespace, name, self._custom.get_namespaced_custom_object,
            group=m.group, version=m.version, namespace=namespace,
            plural=m.plural, name=name,
        )

    def list(self, kind: str, namespace: str | None = None) -> list[dict[str, Any]]:
        method, kwargs = self._list_call(kind, namespace)
        result = self._call(kind, namespace, "", method, **kwargs)
        items = self._to_dict(result).get("items") or []
        m = _mapping(kind)
        for item in items:
            # list responses omit per-item kind/apiVersion
            item.setdefault("kind", kind)
            item.setdefault("apiVersion", m.api_version)
        return items

    def create(self, kind: str, body: dict[str, Any]) -> dict[str, Any]:
        m = _mapping(kind)
        meta = body.get("metadata") or {}
        namespace = meta.get("namespace", "")
        name = meta.get("name", "")
        if m.core:
            obj = self._call(kind, namespace, name, self._core.create_namespaced_secret,
                             namespace=namespace, body=body)
            return self._to_dict(obj)
        return self._call(
            kind, namespace, name, self._custom.create_namespaced_custom_object,
            group=m.group, version=m.version, namespace=namespace,
            plural=m.plural, body=body,
        )

    def patch(
        self, kind: str, namespace: str, name: str, patch: dict[str, Any],
    ) -> dict[str, Any]:
        m = _mapping(kind)
        if m.core:
            obj = self._call(kind, namespace, name, self._core.patch_namespaced_secret,
                             name=name, namespace=namespace, body=patch)
            return self._to_dict(obj)
        return self._call(
            kind, namespace, name, self._custom.patch_namespaced_custom_object,
            group=m.group, version=m.version, namespace=namespace,
            plural=m.plural, name=name, body=patch,
        )

    def delete(self, kind: str, namespace: str, name: str) -> None:
        m = _mapping(kind)
        if m.core:
            self._call(kind, namespace, name, self._core.delete_namespaced_secret,
                       name=name, namespace=namespace)
            return
        self._call(
            kind, namespace, name, self._custom.delete_namespaced_custom_object,
            group=m.group, version=m.version, namespace=namespace,
            plural=m.plural, name=name,
        )

    def watch(
        self, kind: str, timeout_seconds: int = 300,
    ) -> Iterator[tuple[str, dict[str, Any]]]:
        """Stream ``(event_type, object)`` pairs for *kind* across namespaces.

        The stream ends after *timeout_seconds*; callers loop to resume.
        """
        method, kwargs = self._list_call(kind, None)
        w = watch.Watch()
        try:
            for event in w.stream(method, timeout_seconds=timeout_seconds, **kwargs):
                yield event["type"], event["raw_object"]
        except ApiException as exc:
            raise StoreError(f"K8s watch error ({exc.status}): {exc.reason}") from exc
        finally:
            w.stop()

    # --- Private helpers ---

    def _list_call(
        self, kind: str, namespace: str | None,
    ) -> tuple[Callable[..., Any], dict[str, Any]]:
        m = _mapping(kind)
        if m.core:
            if namespace is None:
                return self._core.list_secret_for_all_namespaces, {}
            return self._core.list_namespaced_secret, {"namespace": namespace}
        kwargs: dict[str, Any] = {"group": m.group, "version": m.version, "plural": m.plural}
        if namespace is None:
            return self._custom.list_cluster_custom_object, kwargs
        return self._custom.list_namespaced_custom_object, {**kwargs, "namespace": namespace}

    def _call(
        self,
        kind: str,
        obj_namespace: str | None,
        obj_name: str,
        method: Callable[..., Any],
        /,
        **kwargs: Any,
    ) -> Any:
        """Invoke an API method, translating failures into store errors.

        The leading arguments only label errors; *kwargs* go to the API call.
        """
        try:
            return method(**kwargs)
        except ApiException as exc:
            if exc.status == 404:
                raise NotFoundError(kind, obj_namespace, obj_name) from exc
            if exc.status == 409:
                raise ConflictError(
                    f"K8s API conflict on {kind} {obj_namespace}/{obj_name}: {exc.reason}"
                ) from exc
            raise StoreError(f"K8s API error ({exc.status}): {exc.reason}") from exc
        except Exception as exc:
            raise StoreError(f"K8s client error on {kind}: {exc}") from exc

    def _to_dict(self, k8s_object: Any) -> dict[str, Any]:
        """Convert a kubernetes client object to a plain dict."""
        if isinstance(k8s_object, dict):
            return k8s_object
        return self._api_client.sanitize_for_serialization(k8s_object)


def _mapping(kind: str) -> KindMapping:
    m = KIND_MAP.get(kind)
    if m is None:
        raise StoreError(f"No API mapping for kind: {kind}")
    return m
