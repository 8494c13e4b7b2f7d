"""Kubernetes implementations of the orchestrator-facing interfaces.

Generic object access goes through the ``kubernetes`` dynamic client so that
one code path serves core, apps, networking, OpenShift and custom resources.
Status writes for custom resources use ``CustomObjectsApi`` and events use
``CoreV1Api``.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Iterator
from datetime import UTC, datetime
from typing import Any, NoReturn

from kubernetes import client, config, watch
from kubernetes.client import ApiException
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import ResourceNotFoundError

from grafana_operator.cluster import (
    ClusterClient,
    EventRecorder,
    KubeObject,
    ResourceKind,
    WatchEvent,
)
from grafana_operator.errors import ClusterConflictError, ClusterNotFoundError
from grafana_operator.logging import get_logger
from grafana_operator.types import EventType

logger = get_logger(__name__)

EVENT_SOURCE_COMPONENT = "grafana-operator"


def load_api_client() -> client.ApiClient:
    """Build an API client from in-cluster config, falling back to kubeconfig.

    Raises:
        kubernetes.config.ConfigException: If neither is available.
    """
    try:
        config.load_incluster_config()
        logger.info("Using in-cluster Kubernetes configuration")
    except config.ConfigException:
        config.load_kube_config()
        logger.info("Using kubeconfig Kubernetes configuration")
    return client.ApiClient()


def _raise_translated(exc: ApiException, kind: ResourceKind, namespace: str, name: str) -> NoReturn:
    # Dynamic client errors subclass ApiException and carry the same status.
    target = f"{kind.kind} {namespace}/{name}" if namespace else f"{kind.kind} {name}"
    if exc.status == 404:
        raise ClusterNotFoundError(f"{target} not found") from exc
    if exc.status == 409:
        raise ClusterConflictError(f"{target}: {exc.reason}") from exc
    raise exc


class KubernetesClusterClient(ClusterClient):
    """ClusterClient backed by the ``kubernetes`` dynamic client.

    Args:
        api_client: Configured API client; see :func:`load_api_client`.
    """

    def __init__(self, api_client: client.ApiClient) -> None:
        self._api_client = api_client
        self._dynamic = DynamicClient(api_client)
        self._custom = client.CustomObjectsApi(api_client)
        self._lock = threading.Lock()
        self._resources: dict[ResourceKind, Any] = {}

    def _resource(self, kind: ResourceKind) -> Any:
        with self._lock:
            resource = self._resources.get(kind)
        if resource is None:
            resource = self._dynamic.resources.get(api_version=kind.api_version, kind=kind.kind)
            with self._lock:
                self._resources[kind] = resource
        return resource

    def get(self, kind: ResourceKind, namespace: str, name: str) -> KubeObject:
        try:
            if kind.namespaced:
                found = self._resource(kind).get(name=name, namespace=namespace)
            else:
                found = self._resource(kind).get(name=name)
        except ApiException as e:
            _raise_translated(e, kind, namespace, name)
        return found.to_dict()

    def list(self, kind: ResourceKind, namespace: str | None = None) -> list[KubeObject]:
        resource = self._resource(kind)
        if kind.namespaced and namespace:
            found = resource.get(namespace=namespace)
        else:
            found = resource.get()
        items = found.to_dict().get("items") or []
        for item in items:
            # List items come without apiVersion/kind.
            item.setdefault("apiVersion", kind.api_version)
            item.setdefault("kind", kind.kind)
        return items

    def create(self, kind: ResourceKind, obj: KubeObject) -> KubeObject:
        metadata = obj.get("metadata") or {}
        namespace = metadata.get("namespace", "")
        try:
            created = self._resource(kind).create(body=obj, namespace=namespace or None)
        except ApiException as e:
            _raise_translated(e, kind, namespace, metadata.get("name", ""))
        return created.to_dict()

    def update(self, kind: ResourceKind, obj: KubeObject) -> KubeObject:
        metadata = obj.get("metadata") or {}
        namespace = metadata.get("namespace", "")
        try:
            updated = self._resource(kind).replace(body=obj, namespace=namespace or None)
        except ApiException as e:
            _raise_translated(e, kind, namespace, metadata.get("name", ""))
        return updated.to_dict()

    def update_status(self, kind: ResourceKind, obj: KubeObject) -> KubeObject:
        metadata = obj.get("metadata") or {}
        namespace = metadata.get("namespace", "")
        name = metadata.get("name", "")
        try:
            return self._custom.replace_namespaced_custom_object_status(
                kind.group, kind.version, namespace, kind.plural, name, obj
            )
        except ApiException as e:
            _raise_translated(e, kind, namespace, name)

    def delete(self, kind: ResourceKind, namespace: str, name: str) -> None:
        try:
            self._resource(kind).delete(name=name, namespace=namespace or None)
        except ApiException as e:
            _raise_translated(e, kind, namespace, name)

    def watch(
        self,
        kind: ResourceKind,
        namespace: str | None,
        stop_event: threading.Event,
        timeout_seconds: int,
    ) -> Iterator[WatchEvent]:
        watcher = watch.Watch()
        kwargs: dict[str, Any] = {"timeout": timeout_seconds, "watcher": watcher}
        if kind.namespaced and namespace:
            kwargs["namespace"] = namespace
        try:
            for event in self._dynamic.watch(self._resource(kind), **kwargs):
                if stop_event.is_set():
                    break
                raw = event.get("raw_object")
                if not isinstance(raw, dict):
                    continue
                yield WatchEvent(type=str(event.get("type", "")), object=raw)
        finally:
            watcher.stop()

    def supports(self, kind: ResourceKind) -> bool:
        try:
            self._resource(kind)
        except ResourceNotFoundError:
            return False
        return True


class KubernetesEventRecorder(EventRecorder):
    """Records ``v1`` events against the involved object.

    Event delivery is best effort: failures are logged, never raised.
    """

    def __init__(self, api_client: client.ApiClient, component: str = EVENT_SOURCE_COMPONENT) -> None:
        self._core = client.CoreV1Api(api_client)
        self._component = component

    def event(self, obj: KubeObject, event_type: EventType, reason: str, message: str) -> None:
        metadata = obj.get("metadata") or {}
        namespace = metadata.get("namespace") or "default"
        name = metadata.get("name", "")
        now = datetime.now(UTC).isoformat()
        body = {
            "apiVersion": "v1",
            "kind": "Event",
            "metadata": {
                "name": f"{name}.{uuid.uuid4().hex[:16]}",
                "namespace": namespace,
            },
            "involvedObject": {
                "apiVersion": obj.get("apiVersion", ""),
                "kind": obj.get("kind", ""),
                "name": name,
                "namespace": namespace,
                "uid": metadata.get("uid", ""),
                "resourceVersion": metadata.get("resourceVersion", ""),
            },
            "type": str(event_type),
            "reason": reason,
            "message": message,
            "firstTimestamp": now,
            "lastTimestamp": now,
            "count": 1,
            "source": {"component": self._component},
        }
        try:
            self._core.create_namespaced_event(namespace, body)
        except ApiException as e:
            logger.warning(
                "Failed to record %s event %s on %s/%s: %s",
                event_type,
                reason,
                namespace,
                name,
                e.reason,
            )


__all__ = [
    "KubernetesClusterClient",
    "KubernetesEventRecorder",
    "load_api_client",
]
