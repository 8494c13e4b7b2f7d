"""Test helper functions for grafana operator tests.

Factories for the custom resources and children the controllers read, with
sensible defaults that can be overridden per test.

Usage
=====

Import and use helpers directly in tests::

    from tests.helpers import make_dashboard, make_grafana, seed_ready_instance

    def test_example():
        cluster = FakeClusterClient()
        instance = seed_ready_instance(cluster, make_grafana(name="main"))
        dashboard = cluster.add(GRAFANA_DASHBOARD, make_dashboard(json='{"title": "x"}'))
        # ... use in test ...
"""

from __future__ import annotations

import base64
import copy
from typing import Any

from grafana_operator.cluster import DEPLOYMENT, GRAFANA, SECRET, SERVICE, KubeObject
from grafana_operator.models import API_VERSION, GrafanaInstance
from grafana_operator.model.names import (
    GRAFANA_ADMIN_PASSWORD_ENV_VAR,
    GRAFANA_ADMIN_USER_ENV_VAR,
    admin_secret_name,
    deployment_name,
    service_name,
)
from tests.mocks import FakeClusterClient

DEFAULT_NAMESPACE = "monitoring"
DEFAULT_SELECTOR: dict[str, Any] = {"matchLabels": {"app": "grafana"}}


def make_grafana(
    name: str = "grafana",
    namespace: str = DEFAULT_NAMESPACE,
    spec: dict[str, Any] | None = None,
    **metadata: Any,
) -> KubeObject:
    """Build a Grafana resource selecting dashboards labeled ``app=grafana``."""
    default_spec: dict[str, Any] = {
        "dashboardLabelSelector": [copy.deepcopy(DEFAULT_SELECTOR)],
        "config": {"log": {"mode": "console"}},
    }
    if spec is not None:
        default_spec.update(spec)
    return {
        "apiVersion": API_VERSION,
        "kind": "Grafana",
        "metadata": {"name": name, "namespace": namespace, **metadata},
        "spec": default_spec,
    }


def make_dashboard(
    name: str = "dashboard",
    namespace: str = DEFAULT_NAMESPACE,
    labels: dict[str, str] | None = None,
    **spec: Any,
) -> KubeObject:
    """Build a GrafanaDashboard; spec fields are given as keyword arguments."""
    return {
        "apiVersion": API_VERSION,
        "kind": "GrafanaDashboard",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": {"app": "grafana"} if labels is None else labels,
        },
        "spec": spec,
    }


def make_datasource(
    name: str = "prometheus",
    namespace: str = DEFAULT_NAMESPACE,
    labels: dict[str, str] | None = None,
    definition: dict[str, Any] | None = None,
) -> KubeObject:
    return {
        "apiVersion": API_VERSION,
        "kind": "GrafanaDataSource",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": {"app": "grafana"} if labels is None else labels,
        },
        "spec": {
            "datasources": (
                definition
                if definition is not None
                else {"name": "Prometheus", "type": "prometheus", "url": "http://prometheus:9090"}
            )
        },
    }


def encode(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


def make_admin_secret(instance: GrafanaInstance, user: str = "admin", password: str = "secret") -> KubeObject:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": admin_secret_name(instance), "namespace": instance.meta.namespace},
        "data": {
            GRAFANA_ADMIN_USER_ENV_VAR: encode(user),
            GRAFANA_ADMIN_PASSWORD_ENV_VAR: encode(password),
        },
    }


def make_service(instance: GrafanaInstance, cluster_ip: str = "10.0.0.10") -> KubeObject:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": service_name(instance), "namespace": instance.meta.namespace},
        "spec": {"clusterIP": cluster_ip, "ports": [{"name": "grafana", "port": 3000}]},
    }


def make_deployment(instance: GrafanaInstance, replicas: int = 1, ready: int = 1) -> KubeObject:
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": deployment_name(instance), "namespace": instance.meta.namespace},
        "spec": {"replicas": replicas},
        "status": {"readyReplicas": ready},
    }


def seed_ready_instance(cluster: FakeClusterClient, obj: KubeObject | None = None) -> GrafanaInstance:
    """Store a Grafana resource plus a ready deployment, admin secret and service."""
    stored = cluster.add(GRAFANA, obj if obj is not None else make_grafana())
    instance = GrafanaInstance.from_object(stored)
    cluster.add(DEPLOYMENT, make_deployment(instance))
    cluster.add(SECRET, make_admin_secret(instance))
    cluster.add(SERVICE, make_service(instance))
    return instance
