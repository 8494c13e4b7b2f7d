"""Orchestrator-facing interfaces.

The reconciliation core never talks to the Kubernetes API directly. It uses a
:class:`ClusterClient` (typed get/list/watch/create/update/delete with
optimistic-concurrency conflict signaling) and an :class:`EventRecorder`.
:mod:`grafana_operator.kube` provides the implementations backed by the
``kubernetes`` library; tests use in-memory fakes.

Objects are plain Kubernetes dicts (``apiVersion``, ``kind``, ``metadata``,
``spec``...). Failures are reported with :class:`ClusterNotFoundError` and
:class:`ClusterConflictError`.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from grafana_operator.models import API_VERSION, KIND_DASHBOARD, KIND_DATASOURCE, KIND_GRAFANA
from grafana_operator.types import EventType

type KubeObject = dict[str, Any]


@dataclass(frozen=True)
class ResourceKind:
    """Identifies a resource type on the orchestrator."""

    api_version: str
    kind: str
    plural: str
    namespaced: bool = True

    @property
    def group(self) -> str:
        return self.api_version.rpartition("/")[0]

    @property
    def version(self) -> str:
        return self.api_version.rpartition("/")[2]

    def __str__(self) -> str:
        return f"{self.kind}.{self.api_version}"


DEPLOYMENT = ResourceKind("apps/v1", "Deployment", "deployments")
CONFIG_MAP = ResourceKind("v1", "ConfigMap", "configmaps")
SECRET = ResourceKind("v1", "Secret", "secrets")
SERVICE = ResourceKind("v1", "Service", "services")
INGRESS = ResourceKind("networking.k8s.io/v1", "Ingress", "ingresses")
ROUTE = ResourceKind("route.openshift.io/v1", "Route", "routes")
NAMESPACE = ResourceKind("v1", "Namespace", "namespaces", namespaced=False)

GRAFANA = ResourceKind(API_VERSION, KIND_GRAFANA, "grafanas")
GRAFANA_DASHBOARD = ResourceKind(API_VERSION, KIND_DASHBOARD, "grafanadashboards")
GRAFANA_DATASOURCE = ResourceKind(API_VERSION, KIND_DATASOURCE, "grafanadatasources")

# Child kinds owned by a Grafana instance
OWNED_KINDS = (DEPLOYMENT, CONFIG_MAP, SECRET, SERVICE, INGRESS, ROUTE)


@dataclass(frozen=True)
class WatchEvent:
    """A change notification: ``ADDED``, ``MODIFIED`` or ``DELETED``."""

    type: str
    object: KubeObject


class ClusterClient(ABC):
    """Abstract interface for orchestrator object access.

    Implementations must be safe to call from several worker threads at once.
    """

    @abstractmethod
    def get(self, kind: ResourceKind, namespace: str, name: str) -> KubeObject:
        """Fetch one object.

        Raises:
            ClusterNotFoundError: If the object does not exist.
        """
        pass

    @abstractmethod
    def list(self, kind: ResourceKind, namespace: str | None = None) -> list[KubeObject]:
        """List objects of a kind; ``namespace=None`` lists every namespace."""
        pass

    @abstractmethod
    def create(self, kind: ResourceKind, obj: KubeObject) -> KubeObject:
        """Create an object.

        Raises:
            ClusterConflictError: If the object already exists.
        """
        pass

    @abstractmethod
    def update(self, kind: ResourceKind, obj: KubeObject) -> KubeObject:
        """Replace an object, honoring ``metadata.resourceVersion``.

        Raises:
            ClusterConflictError: If the stored version moved on.
            ClusterNotFoundError: If the object no longer exists.
        """
        pass

    @abstractmethod
    def update_status(self, kind: ResourceKind, obj: KubeObject) -> KubeObject:
        """Write the status subresource of a custom resource.

        Raises:
            ClusterConflictError: If the stored version moved on.
        """
        pass

    @abstractmethod
    def delete(self, kind: ResourceKind, namespace: str, name: str) -> None:
        """Delete an object.

        Raises:
            ClusterNotFoundError: If the object does not exist.
        """
        pass

    @abstractmethod
    def watch(
        self,
        kind: ResourceKind,
        namespace: str | None,
        stop_event: threading.Event,
        timeout_seconds: int,
    ) -> Iterator[WatchEvent]:
        """Stream change notifications until the timeout or the stop event."""
        pass

    @abstractmethod
    def supports(self, kind: ResourceKind) -> bool:
        """Whether the orchestrator serves the given kind."""
        pass


class EventRecorder(ABC):
    """Attaches human-readable events to objects."""

    @abstractmethod
    def event(self, obj: KubeObject, event_type: EventType, reason: str, message: str) -> None:
        pass


def object_key(obj: KubeObject) -> tuple[str, str]:
    """Return ``(namespace, name)`` of an object."""
    metadata = obj.get("metadata") or {}
    return metadata.get("namespace") or "", metadata.get("name") or ""


__all__ = [
    "CONFIG_MAP",
    "ClusterClient",
    "DEPLOYMENT",
    "EventRecorder",
    "GRAFANA",
    "GRAFANA_DASHBOARD",
    "GRAFANA_DATASOURCE",
    "INGRESS",
    "KubeObject",
    "NAMESPACE",
    "OWNED_KINDS",
    "ROUTE",
    "ResourceKind",
    "SECRET",
    "SERVICE",
    "WatchEvent",
    "object_key",
]
