"""In-memory fakes of the operator's collaborators.

These fakes let the reconciliation core run without a Kubernetes API server
or a Grafana instance.

Usage Guidelines:

    **Direct instantiation** is the preferred approach for most tests::

        from tests.mocks import FakeClusterClient, FakeGrafanaClient, RecordingEventRecorder

        def test_example():
            cluster = FakeClusterClient()
            cluster.add(GRAFANA, make_grafana())
            grafana = FakeGrafanaClient()
            # ... use in test ...

    Rationale:

    - Direct instantiation is explicit and makes test setup clearer
    - The class parameters are immediately visible at the call site
"""

from __future__ import annotations

import copy
import itertools
import json
import threading
from collections.abc import Iterator
from typing import Any

from grafana_operator.cluster import (
    ClusterClient,
    EventRecorder,
    KubeObject,
    ResourceKind,
    WatchEvent,
    object_key,
)
from grafana_operator.errors import (
    ClusterConflictError,
    ClusterNotFoundError,
    GrafanaConflictError,
    GrafanaNotFoundError,
)
from grafana_operator.grafana_client import (
    FolderHandle,
    GrafanaClient,
    RemoteObjectHandle,
    folder_title,
)
from grafana_operator.types import EventType

type StoreKey = tuple[ResourceKind, str, str]


class FakeClusterClient(ClusterClient):
    """Dict-backed orchestrator client with optimistic concurrency.

    Every write bumps ``metadata.resourceVersion``. An update or status write
    carrying a stale resource version raises :class:`ClusterConflictError`.
    An object with a deletion timestamp and no finalizers left disappears on
    update, as it would on a real API server.

    Args:
        unsupported: Kinds :meth:`supports` reports as unavailable.

    Attributes:
        calls: ``(operation, kind name, object name)`` for every write.
        errors: Exceptions to raise once on the next ``(operation, kind)``.
        watch_events: Events yielded by :meth:`watch`, per kind.
    """

    def __init__(self, unsupported: tuple[ResourceKind, ...] = ()) -> None:
        self._lock = threading.Lock()
        self._objects: dict[StoreKey, KubeObject] = {}
        self._versions = itertools.count(1)
        self._uids = itertools.count(1)
        self.unsupported = set(unsupported)
        self.calls: list[tuple[str, str, str]] = []
        self.errors: dict[tuple[str, ResourceKind], BaseException] = {}
        self.watch_events: dict[ResourceKind, list[WatchEvent]] = {}

    def _key(self, kind: ResourceKind, namespace: str, name: str) -> StoreKey:
        return kind, namespace if kind.namespaced else "", name

    def _raise_injected(self, operation: str, kind: ResourceKind) -> None:
        error = self.errors.pop((operation, kind), None)
        if error is not None:
            raise error

    def add(self, kind: ResourceKind, obj: KubeObject) -> KubeObject:
        """Seed an object without recording a call."""
        stored = copy.deepcopy(obj)
        stored.setdefault("apiVersion", kind.api_version)
        stored.setdefault("kind", kind.kind)
        metadata = stored.setdefault("metadata", {})
        metadata.setdefault("uid", f"uid-{next(self._uids)}")
        metadata["resourceVersion"] = str(next(self._versions))
        namespace, name = object_key(stored)
        with self._lock:
            self._objects[self._key(kind, namespace, name)] = stored
        return copy.deepcopy(stored)

    def stored(self, kind: ResourceKind, namespace: str, name: str) -> KubeObject | None:
        with self._lock:
            found = self._objects.get(self._key(kind, namespace, name))
        return copy.deepcopy(found) if found is not None else None

    def objects(self, kind: ResourceKind) -> list[KubeObject]:
        with self._lock:
            return [copy.deepcopy(obj) for (k, _, _), obj in self._objects.items() if k == kind]

    def writes(self, operation: str) -> list[tuple[str, str]]:
        """``(kind name, object name)`` of every recorded call of one operation."""
        return [(kind, name) for op, kind, name in self.calls if op == operation]

    def get(self, kind: ResourceKind, namespace: str, name: str) -> KubeObject:
        self._raise_injected("get", kind)
        found = self.stored(kind, namespace, name)
        if found is None:
            raise ClusterNotFoundError(f"{kind.kind} {namespace}/{name} not found")
        return found

    def list(self, kind: ResourceKind, namespace: str | None = None) -> list[KubeObject]:
        self._raise_injected("list", kind)
        return [
            obj
            for obj in self.objects(kind)
            if not namespace or not kind.namespaced or object_key(obj)[0] == namespace
        ]

    def create(self, kind: ResourceKind, obj: KubeObject) -> KubeObject:
        namespace, name = object_key(obj)
        self.calls.append(("create", kind.kind, name))
        self._raise_injected("create", kind)
        with self._lock:
            if self._key(kind, namespace, name) in self._objects:
                raise ClusterConflictError(f"{kind.kind} {namespace}/{name} already exists")
        return self.add(kind, obj)

    def _check_version(self, kind: ResourceKind, obj: KubeObject) -> KubeObject:
        namespace, name = object_key(obj)
        with self._lock:
            current = self._objects.get(self._key(kind, namespace, name))
        if current is None:
            raise ClusterNotFoundError(f"{kind.kind} {namespace}/{name} not found")
        sent = (obj.get("metadata") or {}).get("resourceVersion")
        if sent and sent != current["metadata"]["resourceVersion"]:
            raise ClusterConflictError(f"{kind.kind} {namespace}/{name} has been modified")
        return current

    def update(self, kind: ResourceKind, obj: KubeObject) -> KubeObject:
        namespace, name = object_key(obj)
        self.calls.append(("update", kind.kind, name))
        self._raise_injected("update", kind)
        current = self._check_version(kind, obj)
        stored = copy.deepcopy(obj)
        metadata = stored.setdefault("metadata", {})
        metadata["uid"] = current["metadata"].get("uid", "")
        metadata["resourceVersion"] = str(next(self._versions))
        # The status subresource is only written through update_status.
        if "status" in current:
            stored["status"] = copy.deepcopy(current["status"])
        else:
            stored.pop("status", None)
        with self._lock:
            if metadata.get("deletionTimestamp") and not metadata.get("finalizers"):
                del self._objects[self._key(kind, namespace, name)]
            else:
                self._objects[self._key(kind, namespace, name)] = stored
        return copy.deepcopy(stored)

    def update_status(self, kind: ResourceKind, obj: KubeObject) -> KubeObject:
        namespace, name = object_key(obj)
        self.calls.append(("update_status", kind.kind, name))
        self._raise_injected("update_status", kind)
        current = copy.deepcopy(self._check_version(kind, obj))
        current["status"] = copy.deepcopy(obj.get("status") or {})
        current["metadata"]["resourceVersion"] = str(next(self._versions))
        with self._lock:
            self._objects[self._key(kind, namespace, name)] = current
        return copy.deepcopy(current)

    def delete(self, kind: ResourceKind, namespace: str, name: str) -> None:
        self.calls.append(("delete", kind.kind, name))
        self._raise_injected("delete", kind)
        with self._lock:
            if self._objects.pop(self._key(kind, namespace, name), None) is None:
                raise ClusterNotFoundError(f"{kind.kind} {namespace}/{name} not found")

    def watch(
        self,
        kind: ResourceKind,
        namespace: str | None,
        stop_event: threading.Event,
        timeout_seconds: int,
    ) -> Iterator[WatchEvent]:
        self._raise_injected("watch", kind)
        yield from self.watch_events.pop(kind, [])
        stop_event.wait(timeout_seconds)

    def supports(self, kind: ResourceKind) -> bool:
        return kind not in self.unsupported


class RecordingEventRecorder(EventRecorder):
    """Keeps every recorded event as ``(object name, type, reason, message)``."""

    def __init__(self) -> None:
        self.events: list[tuple[str, EventType, str, str]] = []

    def event(self, obj: KubeObject, event_type: EventType, reason: str, message: str) -> None:
        self.events.append((object_key(obj)[1], event_type, reason, message))

    def reasons(self) -> list[str]:
        return [reason for _, _, reason, _ in self.events]


class FakeGrafanaClient(GrafanaClient):
    """Grafana stand-in holding dashboards, folders and data sources in memory.

    Search is a substring match on the title, as in Grafana.

    Attributes:
        dashboards: Stored dashboards by uid.
        folders: Folders by title.
        datasources: Data sources by name.
        calls: Method names in call order.
        errors: Exceptions to raise once on the next call of a method.
    """

    def __init__(self) -> None:
        self.dashboards: dict[str, dict[str, Any]] = {}
        self.dashboard_folders: dict[str, int] = {}
        self.folders: dict[str, FolderHandle] = {}
        self.datasources: dict[str, dict[str, Any]] = {}
        self.calls: list[str] = []
        self.errors: dict[str, BaseException] = {}
        self._ids = itertools.count(1)

    def _call(self, method: str) -> None:
        self.calls.append(method)
        error = self.errors.pop(method, None)
        if error is not None:
            raise error

    def add_dashboard(self, title: str, uid: str) -> None:
        self.dashboards[uid] = {"title": title, "uid": uid, "id": next(self._ids)}

    def check_health(self) -> None:
        self._call("check_health")

    def get_dashboards_by_name(self, name: str) -> list[RemoteObjectHandle]:
        self._call("get_dashboards_by_name")
        return [
            RemoteObjectHandle(id=board.get("id"), uid=uid, title=board.get("title", ""))
            for uid, board in self.dashboards.items()
            if name in board.get("title", "")
        ]

    def create_or_update_dashboard(self, dashboard: bytes, folder_id: int) -> RemoteObjectHandle:
        self._call("create_or_update_dashboard")
        board = json.loads(dashboard)
        uid = board["uid"]
        stored = dict(board)
        stored["id"] = next(self._ids)
        self.dashboards[uid] = stored
        self.dashboard_folders[uid] = folder_id
        return RemoteObjectHandle(id=stored["id"], uid=uid, status="success", version=1)

    def delete_dashboard_by_uid(self, uid: str) -> RemoteObjectHandle:
        self._call("delete_dashboard_by_uid")
        board = self.dashboards.pop(uid, None)
        if board is None:
            raise GrafanaNotFoundError("deleting dashboard: not found", status_code=404)
        return RemoteObjectHandle(uid=uid, title=board.get("title", ""))

    def get_or_create_namespace_folder(self, namespace: str) -> FolderHandle:
        self._call("get_or_create_namespace_folder")
        title = folder_title(namespace)
        if title not in self.folders:
            self.folders[title] = FolderHandle(id=next(self._ids), uid=f"f-{title}", title=title)
        return self.folders[title]

    def get_datasource_by_name(self, name: str) -> RemoteObjectHandle:
        self._call("get_datasource_by_name")
        found = self.datasources.get(name)
        if found is None:
            raise GrafanaNotFoundError("getting datasource: not found", status_code=404)
        return RemoteObjectHandle(id=found.get("id"), name=name)

    def create_datasource(self, datasource: bytes) -> RemoteObjectHandle:
        self._call("create_datasource")
        definition = json.loads(datasource)
        name = definition["name"]
        if name in self.datasources:
            raise GrafanaConflictError("creating datasource: conflict", status_code=409)
        definition["id"] = next(self._ids)
        self.datasources[name] = definition
        return RemoteObjectHandle(id=definition["id"], name=name, message="Datasource added")

    def delete_datasource_by_name(self, name: str) -> RemoteObjectHandle:
        self._call("delete_datasource_by_name")
        if self.datasources.pop(name, None) is None:
            raise GrafanaNotFoundError("deleting datasource: not found", status_code=404)
        return RemoteObjectHandle(name=name, message="Data source deleted")


class GrafanaClientFactoryStub:
    """Client factory that hands out one shared :class:`FakeGrafanaClient`.

    Records the arguments of every construction in ``builds``.
    """

    def __init__(self, client: FakeGrafanaClient | None = None) -> None:
        self.client = client or FakeGrafanaClient()
        self.builds: list[dict[str, Any]] = []

    def __call__(
        self,
        base_url: str,
        user: str,
        password: str,
        timeout: float = 5.0,
        cancel_event: threading.Event | None = None,
    ) -> FakeGrafanaClient:
        self.builds.append(
            {
                "base_url": base_url,
                "user": user,
                "password": password,
                "timeout": timeout,
                "cancel_event": cancel_event,
            }
        )
        return self.client
