"""REST client for the Grafana HTTP API.

One client is built per Grafana instance and per reconcile, from the admin
credentials and admin URL resolved out of the cluster state.

Transport rules:

- TLS verification is disabled. Grafana is addressed either by its
  cluster-internal service or through an ingress/route that commonly carries a
  self-signed certificate.
- Every request opens and closes its own connection. Credentials and
  endpoints change with the instance, and a pooled connection would keep
  talking to a stale endpoint.
- Every request is bounded by a timeout (five seconds by default, at most
  thirty) so that one unreachable instance cannot starve the worker pool, and
  a cancelled reconcile is released within that bound.

Status handling: 200 is success, 404 raises :class:`GrafanaNotFoundError`
where absence is meaningful, 409 raises :class:`GrafanaConflictError` on data
source creation, and any other status raises :class:`GrafanaClientError`
carrying the status code. Transport errors (timeouts, TLS, DNS) are not
wrapped and propagate as ``httpx`` exceptions. There are no retries here; a
failed reconcile is requeued by the controller.
"""

from __future__ import annotations

import json
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Self

import httpx

from grafana_operator.errors import (
    GrafanaClientError,
    GrafanaConflictError,
    GrafanaNotFoundError,
    ReconcileCancelledError,
)
from grafana_operator.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CLIENT_TIMEOUT = 5.0

# Upper bound for a single request, and so for how long a cancelled
# reconcile can stay blocked on one
MAX_CLIENT_TIMEOUT = 30.0

NON_NAMESPACED_FOLDER_NAME = "Non-Namespaced"

USER_AGENT = "grafana-operator"

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
    "User-Agent": USER_AGENT,
    "Connection": "close",
}


@dataclass(frozen=True)
class RemoteObjectHandle:
    """A dashboard or data source as reported by Grafana.

    Only identity and existence are used by the operator; the remaining
    fields are informational.
    """

    id: int | None = None
    uid: str = ""
    slug: str = ""
    version: int | None = None
    title: str = ""
    name: str = ""
    url: str = ""
    message: str = ""
    status: str = ""

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> Self:
        return cls(
            id=data.get("id"),
            uid=data.get("uid") or "",
            slug=data.get("slug") or "",
            version=data.get("version"),
            title=data.get("title") or "",
            name=data.get("name") or "",
            url=data.get("url") or "",
            message=data.get("message") or "",
            status=data.get("status") or "",
        )


@dataclass(frozen=True)
class FolderHandle:
    id: int = 0
    uid: str = ""
    title: str = ""

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> Self:
        return cls(
            id=data.get("id") or 0,
            uid=data.get("uid") or "",
            title=data.get("title") or "",
        )


def folder_title(namespace: str) -> str:
    """Folder title for a namespace; the placeholder title when it is empty."""
    return namespace or NON_NAMESPACED_FOLDER_NAME


class GrafanaClient(ABC):
    """Abstract interface for Grafana operations.

    This allows for easy mocking in tests and potential alternative
    implementations.
    """

    @abstractmethod
    def check_health(self) -> None:
        """Raise unless ``/api/health`` answers 200."""
        pass

    @abstractmethod
    def get_dashboards_by_name(self, name: str) -> list[RemoteObjectHandle]:
        """Search dashboards by name.

        Args:
            name: The search query.

        Returns:
            The search hits, possibly empty.
        """
        pass

    @abstractmethod
    def create_or_update_dashboard(self, dashboard: bytes, folder_id: int) -> RemoteObjectHandle:
        """Submit a dashboard with overwrite semantics.

        Args:
            dashboard: Dashboard JSON as produced by the content pipeline.
            folder_id: ID of the target folder.

        Returns:
            Grafana's description of the stored dashboard.
        """
        pass

    @abstractmethod
    def delete_dashboard_by_uid(self, uid: str) -> RemoteObjectHandle:
        pass

    @abstractmethod
    def get_or_create_namespace_folder(self, namespace: str) -> FolderHandle:
        """Return the folder for a namespace, creating it when missing."""
        pass

    @abstractmethod
    def get_datasource_by_name(self, name: str) -> RemoteObjectHandle:
        pass

    @abstractmethod
    def create_datasource(self, datasource: bytes) -> RemoteObjectHandle:
        pass

    @abstractmethod
    def delete_datasource_by_name(self, name: str) -> RemoteObjectHandle:
        pass


class GrafanaRestClient(GrafanaClient):
    """Grafana client backed by ``httpx`` with basic authentication.

    Args:
        base_url: Admin URL of the instance, e.g. ``http://10.0.0.1:3000``.
        user: Admin user.
        password: Admin password.
        timeout: Per-request timeout in seconds, capped at
            :data:`MAX_CLIENT_TIMEOUT`.
        cancel_event: Optional event; once set, further requests raise
            :class:`ReconcileCancelledError` instead of being sent. A request
            already in flight runs to completion or to its timeout, and its
            response is then discarded with the same error.
        transport: Optional ``httpx`` transport, mainly for tests.
    """

    def __init__(
        self,
        base_url: str,
        user: str,
        password: str,
        timeout: float = DEFAULT_CLIENT_TIMEOUT,
        cancel_event: threading.Event | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.auth = httpx.BasicAuth(user, password)
        if timeout > MAX_CLIENT_TIMEOUT:
            logger.warning(
                "Client timeout %.1fs exceeds the maximum, using %.1fs", timeout, MAX_CLIENT_TIMEOUT
            )
            timeout = MAX_CLIENT_TIMEOUT
        self.timeout = httpx.Timeout(timeout)
        self._cancel_event = cancel_event
        self._transport = transport

    def _check_cancelled(self, method: str, path: str) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise ReconcileCancelledError(f"request {method} {path} cancelled")

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        content: bytes | None = None,
    ) -> httpx.Response:
        self._check_cancelled(method, path)

        # A fresh client per request: no connection is ever reused.
        with httpx.Client(
            base_url=self.base_url,
            auth=self.auth,
            headers=DEFAULT_HEADERS,
            timeout=self.timeout,
            verify=False,
            transport=self._transport,
        ) as client:
            response = client.request(method, path, params=params, content=content)
            response.read()
        self._check_cancelled(method, path)
        logger.debug(
            "%s %s -> %s",
            method,
            path,
            response.status_code,
            extra={"diagnostic_tag": "grafana"},
        )
        return response

    @staticmethod
    def _check(
        response: httpx.Response,
        action: str,
        *,
        not_found: bool = False,
        conflict: bool = False,
    ) -> None:
        status = response.status_code
        if status == httpx.codes.OK:
            return
        if not_found and status == httpx.codes.NOT_FOUND:
            raise GrafanaNotFoundError(f"{action}: not found", status_code=status)
        if conflict and status == httpx.codes.CONFLICT:
            raise GrafanaConflictError(f"{action}: conflict", status_code=status)
        raise GrafanaClientError(
            f"error {action}, expected status 200 but got {status}",
            status_code=status,
        )

    @staticmethod
    def _json(response: httpx.Response, action: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise GrafanaClientError(
                f"error {action}: response is not valid JSON", status_code=response.status_code
            ) from e

    def check_health(self) -> None:
        response = self._request("GET", "/api/health")
        self._check(response, "getting health information about Grafana")

    def get_dashboards_by_name(self, name: str) -> list[RemoteObjectHandle]:
        action = "searching dashboards"
        response = self._request("GET", "/api/search", params={"query": name})
        self._check(response, action, not_found=True)
        hits = self._json(response, action)
        if not isinstance(hits, list):
            raise GrafanaClientError(f"error {action}: expected a list", response.status_code)
        return [RemoteObjectHandle.from_api_response(hit) for hit in hits if isinstance(hit, dict)]

    def create_or_update_dashboard(self, dashboard: bytes, folder_id: int) -> RemoteObjectHandle:
        action = "creating dashboard"
        try:
            board = json.loads(dashboard)
        except ValueError as e:
            raise GrafanaClientError(f"error {action}: payload is not valid JSON") from e
        # Overwrite is always set: the locally computed uid is the remote identity.
        body = json.dumps({"dashboard": board, "folderId": folder_id, "overwrite": True})
        response = self._request("POST", "/api/dashboards/db", content=body.encode())
        self._check(response, action)
        return RemoteObjectHandle.from_api_response(self._json(response, action))

    def delete_dashboard_by_uid(self, uid: str) -> RemoteObjectHandle:
        action = "deleting dashboard"
        response = self._request("DELETE", f"/api/dashboards/uid/{uid}")
        self._check(response, action, not_found=True)
        return RemoteObjectHandle.from_api_response(self._json(response, action))

    def _get_all_folders(self) -> list[FolderHandle]:
        action = "listing folders"
        response = self._request("GET", "/api/folders")
        self._check(response, action)
        folders = self._json(response, action)
        if not isinstance(folders, list):
            raise GrafanaClientError(f"error {action}: expected a list", response.status_code)
        return [FolderHandle.from_api_response(f) for f in folders if isinstance(f, dict)]

    def get_or_create_namespace_folder(self, namespace: str) -> FolderHandle:
        title = folder_title(namespace)
        for folder in self._get_all_folders():
            if folder.title == title:
                return folder

        action = "creating folder"
        body = json.dumps({"title": title}).encode()
        response = self._request("POST", "/api/folders", content=body)
        self._check(response, action)
        logger.info("Created folder %s", title)
        return FolderHandle.from_api_response(self._json(response, action))

    def get_datasource_by_name(self, name: str) -> RemoteObjectHandle:
        action = "getting datasource"
        response = self._request("GET", f"/api/datasources/name/{name}")
        self._check(response, action, not_found=True)
        return RemoteObjectHandle.from_api_response(self._json(response, action))

    def create_datasource(self, datasource: bytes) -> RemoteObjectHandle:
        action = "creating datasource"
        response = self._request("POST", "/api/datasources", content=datasource)
        self._check(response, action, conflict=True)
        return RemoteObjectHandle.from_api_response(self._json(response, action))

    def delete_datasource_by_name(self, name: str) -> RemoteObjectHandle:
        action = "deleting datasource"
        response = self._request("DELETE", f"/api/datasources/name/{name}")
        self._check(response, action, not_found=True)
        return RemoteObjectHandle.from_api_response(self._json(response, action))


__all__ = [
    "DEFAULT_CLIENT_TIMEOUT",
    "MAX_CLIENT_TIMEOUT",
    "FolderHandle",
    "GrafanaClient",
    "GrafanaRestClient",
    "NON_NAMESPACED_FOLDER_NAME",
    "RemoteObjectHandle",
    "folder_title",
]
