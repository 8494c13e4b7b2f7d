"""Point-in-time view of a Grafana instance's children, and what follows from it.

A snapshot is read fresh at the start of every reconcile and never cached:
it must reflect the orchestrator's current truth. From a snapshot the admin
URL and credentials are resolved to build a :class:`GrafanaClient`.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Self

from grafana_operator.cluster import (
    CONFIG_MAP,
    DEPLOYMENT,
    GRAFANA,
    INGRESS,
    NAMESPACE,
    ROUTE,
    SECRET,
    SERVICE,
    ClusterClient,
    KubeObject,
    ResourceKind,
)
from grafana_operator.errors import ClusterNotFoundError, FatalError
from grafana_operator.grafana_client import DEFAULT_CLIENT_TIMEOUT, GrafanaClient, GrafanaRestClient
from grafana_operator.logging import get_logger
from grafana_operator.model import admin_credentials
from grafana_operator.model.names import (
    admin_secret_name,
    config_map_name,
    deployment_name,
    ingress_name,
    route_name,
    service_name,
)
from grafana_operator.model.network import service_port
from grafana_operator.models import GrafanaInstance
from grafana_operator.selectors import matches_selector, matches_selectors

logger = get_logger(__name__)

type GrafanaClientFactory = Callable[..., GrafanaClient]


def get_optional(cluster: ClusterClient, kind: ResourceKind, namespace: str, name: str) -> KubeObject | None:
    """Fetch an object, returning None when it does not exist."""
    try:
        return cluster.get(kind, namespace, name)
    except ClusterNotFoundError:
        return None


@dataclass
class ClusterStateSnapshot:
    """Children of one Grafana instance as currently stored; None when absent."""

    deployment: KubeObject | None = None
    config_map: KubeObject | None = None
    admin_secret: KubeObject | None = None
    service: KubeObject | None = None
    ingress: KubeObject | None = None
    route: KubeObject | None = None

    @classmethod
    def read(cls, cluster: ClusterClient, instance: GrafanaInstance, route_supported: bool = False) -> Self:
        """Read every child of ``instance``.

        Absence is never an error here; callers that need an object (the
        admin secret to build a client) check for it themselves.

        Args:
            cluster: Orchestrator client.
            instance: The Grafana instance.
            route_supported: Whether to look for a route; ingress is read
                either way so that a stale one can be removed.
        """
        namespace = instance.meta.namespace
        return cls(
            deployment=get_optional(cluster, DEPLOYMENT, namespace, deployment_name(instance)),
            config_map=get_optional(cluster, CONFIG_MAP, namespace, config_map_name(instance)),
            admin_secret=get_optional(cluster, SECRET, namespace, admin_secret_name(instance)),
            service=get_optional(cluster, SERVICE, namespace, service_name(instance)),
            ingress=get_optional(cluster, INGRESS, namespace, ingress_name(instance)),
            route=(
                get_optional(cluster, ROUTE, namespace, route_name(instance)) if route_supported else None
            ),
        )

    def credentials(self) -> tuple[str, str]:
        """Admin user and password.

        Raises:
            FatalError: If the secret is missing or incomplete.
        """
        return admin_credentials(self.admin_secret)


def _ingress_status_address(ingress: KubeObject) -> str:
    entries = (((ingress.get("status") or {}).get("loadBalancer") or {}).get("ingress")) or []
    for entry in entries:
        # Only the first entry is considered.
        return entry.get("hostname") or entry.get("ip") or ""
    return ""


def resolve_admin_url(instance: GrafanaInstance, snapshot: ClusterStateSnapshot) -> str:
    """Work out how to reach the Grafana API.

    First match wins: the route host (unless the instance prefers the
    service), the ingress hostname from the spec, the ingress load-balancer
    hostname or IP, the service cluster IP, then the service DNS name.

    Raises:
        FatalError: If none of these is available.
    """
    prefer_service = instance.prefer_service

    if snapshot.route is not None and not prefer_service:
        host = (snapshot.route.get("spec") or {}).get("host")
        if host:
            return f"https://{host}"

    if snapshot.ingress is not None and not prefer_service:
        if instance.ingress is not None and instance.ingress.hostname:
            return f"https://{instance.ingress.hostname}"
        address = _ingress_status_address(snapshot.ingress)
        if address:
            return f"https://{address}"

    if snapshot.service is not None:
        port = service_port(instance)
        cluster_ip = (snapshot.service.get("spec") or {}).get("clusterIP")
        if cluster_ip and cluster_ip != "None":
            return f"http://{cluster_ip}:{port}"
        name = (snapshot.service.get("metadata") or {}).get("name") or service_name(instance)
        return f"http://{name}:{port}"

    raise FatalError("failed to find admin url")


def new_grafana_client(
    instance: GrafanaInstance,
    snapshot: ClusterStateSnapshot,
    *,
    timeout: float = DEFAULT_CLIENT_TIMEOUT,
    cancel_event: threading.Event | None = None,
    factory: GrafanaClientFactory = GrafanaRestClient,
) -> GrafanaClient:
    """Build a Grafana client for an instance from its current cluster state.

    Args:
        instance: The Grafana instance.
        snapshot: Its freshly read children.
        timeout: Default per-request timeout; ``spec.client.timeout`` wins.
        cancel_event: Aborts further requests once set.
        factory: Client constructor, replaced in tests.

    Raises:
        FatalError: If no admin URL or no complete credentials are available.
    """
    url = resolve_admin_url(instance, snapshot)
    user, password = snapshot.credentials()
    return factory(
        url,
        user,
        password,
        timeout=instance.client_timeout or timeout,
        cancel_event=cancel_event,
    )


def label_selectors(instance: GrafanaInstance, for_datasource: bool) -> list[dict[str, Any] | None]:
    """Data sources use ``datasourceLabelSelector`` when declared, dashboard selectors otherwise."""
    if for_datasource and instance.datasource_label_selectors:
        return instance.datasource_label_selectors
    return instance.dashboard_label_selectors


def _deployment_ready(cluster: ClusterClient, instance: GrafanaInstance) -> bool:
    deployment = get_optional(cluster, DEPLOYMENT, instance.meta.namespace, deployment_name(instance))
    if deployment is None:
        return False
    desired = (deployment.get("spec") or {}).get("replicas")
    desired = 1 if desired is None else desired
    ready = (deployment.get("status") or {}).get("readyReplicas") or 0
    if ready != desired:
        logger.debug(
            "Grafana deployment %s not ready: %s/%s replicas",
            deployment_name(instance),
            ready,
            desired,
        )
        return False
    return True


def match_instances(
    cluster: ClusterClient,
    namespace: str,
    labels: dict[str, str],
    *,
    for_datasource: bool = False,
    watch_namespace: str = "",
) -> list[GrafanaInstance]:
    """Find the ready Grafana instances a dashboard or data source targets.

    An instance in the resource's own namespace matches on its label
    selectors. An instance elsewhere additionally needs a
    ``dashboardNamespaceSelector`` that matches the resource namespace's
    labels. Instances whose deployment is missing or not fully ready are
    skipped for this pass.

    Args:
        cluster: Orchestrator client.
        namespace: Namespace of the dashboard or data source.
        labels: Its labels.
        for_datasource: Use ``datasourceLabelSelector`` when the instance
            declares one.
        watch_namespace: Only consider instances in this namespace when set.

    Raises:
        SelectorError: If an instance carries a malformed selector.
    """
    namespace_labels: dict[str, str] | None = None
    matched: list[GrafanaInstance] = []

    for obj in cluster.list(GRAFANA, watch_namespace or None):
        instance = GrafanaInstance.from_object(obj)
        if instance.meta.being_deleted:
            continue
        if instance.meta.namespace != namespace:
            if instance.dashboard_namespace_selector is None:
                continue
            if namespace_labels is None:
                found = get_optional(cluster, NAMESPACE, "", namespace) or {}
                namespace_labels = (found.get("metadata") or {}).get("labels") or {}
            if not matches_selector(namespace_labels, instance.dashboard_namespace_selector):
                continue
        if not matches_selectors(labels, label_selectors(instance, for_datasource)):
            continue
        if not _deployment_ready(cluster, instance):
            continue
        matched.append(instance)

    return matched


__all__ = [
    "ClusterStateSnapshot",
    "get_optional",
    "label_selectors",
    "match_instances",
    "new_grafana_client",
    "resolve_admin_url",
]
