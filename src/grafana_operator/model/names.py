"""Names, labels and constants shared by the child-object builders."""

from __future__ import annotations

import copy
from typing import Any

from grafana_operator.models import GrafanaInstance

GRAFANA_CONFIG_FILE_NAME = "grafana.ini"
LAST_CONFIG_ANNOTATION = "last-config"
LAST_CONFIG_ENV_VAR = "LAST_CONFIG"
GRAFANA_ADMIN_USER_ENV_VAR = "GF_SECURITY_ADMIN_USER"
GRAFANA_ADMIN_PASSWORD_ENV_VAR = "GF_SECURITY_ADMIN_PASSWORD"
DEFAULT_ADMIN_USER = "admin"
GRAFANA_HEALTH_ENDPOINT = "/api/health"
GRAFANA_HTTP_PORT_NAME = "grafana"
GRAFANA_CONTAINER_PORT_NAME = "grafana-http"
GRAFANA_CONTAINER_NAME = "grafana"
GRAFANA_INIT_CONTAINER_NAME = "grafana-plugins-init"
GRAFANA_PLUGINS_VOLUME_NAME = "grafana-plugins"
GRAFANA_LOGS_VOLUME_NAME = "grafana-logs"
GRAFANA_DATA_VOLUME_NAME = "grafana-data"
SECRETS_MOUNT_DIR = "/etc/grafana-secrets/"
CONFIG_MAPS_MOUNT_DIR = "/etc/grafana-configmaps/"

APP_LABEL = "app"
APP_LABEL_VALUE = "grafana"
INSTANCE_LABEL = "grafana.monitor.kun/instance"


def deployment_name(instance: GrafanaInstance) -> str:
    return f"grafana-deployment-{instance.meta.name}"


def config_map_name(instance: GrafanaInstance) -> str:
    return f"grafana-config-{instance.meta.name}"


def admin_secret_name(instance: GrafanaInstance) -> str:
    return f"grafana-admin-credentials-{instance.meta.name}"


def service_name(instance: GrafanaInstance) -> str:
    return f"grafana-service-{instance.meta.name}"


def ingress_name(instance: GrafanaInstance) -> str:
    return f"grafana-ingress-{instance.meta.name}"


def route_name(instance: GrafanaInstance) -> str:
    return f"grafana-route-{instance.meta.name}"


def selector_labels(instance: GrafanaInstance) -> dict[str, str]:
    """Labels identifying the pods of one instance; never change once set."""
    return {APP_LABEL: APP_LABEL_VALUE, INSTANCE_LABEL: instance.meta.name}


def object_metadata(
    instance: GrafanaInstance,
    name: str,
    labels: dict[str, str] | None = None,
    annotations: dict[str, str] | None = None,
) -> dict[str, Any]:
    metadata: dict[str, Any] = {"name": name, "namespace": instance.meta.namespace}
    if labels:
        metadata["labels"] = dict(labels)
    if annotations:
        metadata["annotations"] = dict(annotations)
    return metadata


def start_from(current: dict[str, Any] | None, api_version: str, kind: str) -> dict[str, Any]:
    """Copy the current object, or start an empty one of the given kind."""
    if current is None:
        return {"apiVersion": api_version, "kind": kind, "metadata": {}}
    obj = copy.deepcopy(current)
    obj.setdefault("apiVersion", api_version)
    obj.setdefault("kind", kind)
    obj.setdefault("metadata", {})
    return obj


def merge_annotations(requested: dict[str, str] | None, existing: dict[str, str] | None) -> dict[str, str]:
    """Merge two annotation maps; ``requested`` wins on key collisions."""
    merged = dict(existing or {})
    merged.update(requested or {})
    return merged
