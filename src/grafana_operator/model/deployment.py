"""The Grafana deployment.

Default resource quantities are written in the canonical form the API server
stores them in, so that an unchanged deployment compares equal on the next
pass.
"""

from __future__ import annotations

import copy
from typing import Any

from grafana_operator.model.names import (
    CONFIG_MAPS_MOUNT_DIR,
    GRAFANA_ADMIN_PASSWORD_ENV_VAR,
    GRAFANA_ADMIN_USER_ENV_VAR,
    GRAFANA_CONTAINER_NAME,
    GRAFANA_CONTAINER_PORT_NAME,
    GRAFANA_DATA_VOLUME_NAME,
    GRAFANA_HEALTH_ENDPOINT,
    GRAFANA_INIT_CONTAINER_NAME,
    GRAFANA_LOGS_VOLUME_NAME,
    GRAFANA_PLUGINS_VOLUME_NAME,
    LAST_CONFIG_ENV_VAR,
    SECRETS_MOUNT_DIR,
    admin_secret_name,
    config_map_name,
    deployment_name,
    merge_annotations,
    object_metadata,
    selector_labels,
    start_from,
)
from grafana_operator.models import GrafanaInstance

DEFAULT_RESOURCES = {
    "requests": {"memory": "256Mi", "cpu": "100m"},
    "limits": {"memory": "1Gi", "cpu": "500m"},
}
DEFAULT_INIT_RESOURCES = {
    "requests": {"memory": "128Mi", "cpu": "250m"},
    "limits": {"memory": "512Mi", "cpu": "1"},
}

PLUGINS_ENV_VAR = "GRAFANA_PLUGINS"
ROLLING_UPDATE_MAX_SURGE = "25%"
ROLLING_UPDATE_MAX_UNAVAILABLE = "25%"


def _secret_volume_name(secret: str) -> str:
    return f"secret-{secret}"


def _config_map_volume_name(config_map: str) -> str:
    return f"configmap-{config_map}"


def _volumes(instance: GrafanaInstance) -> list[dict[str, Any]]:
    volumes: list[dict[str, Any]] = [
        {"name": config_map_name(instance), "configMap": {"name": config_map_name(instance)}},
        {"name": GRAFANA_LOGS_VOLUME_NAME, "emptyDir": {}},
        {"name": GRAFANA_DATA_VOLUME_NAME, "emptyDir": {}},
        {"name": GRAFANA_PLUGINS_VOLUME_NAME, "emptyDir": {}},
    ]
    for secret in instance.secrets:
        volumes.append(
            {
                "name": _secret_volume_name(secret),
                "secret": {"secretName": secret, "optional": True},
            }
        )
    for config_map in instance.config_maps:
        volumes.append({"name": _config_map_volume_name(config_map), "configMap": {"name": config_map}})
    return volumes


def _extra_mounts(instance: GrafanaInstance) -> list[dict[str, Any]]:
    mounts = [
        {"name": _secret_volume_name(secret), "mountPath": SECRETS_MOUNT_DIR + secret}
        for secret in instance.secrets
    ]
    mounts.extend(
        {"name": _config_map_volume_name(config_map), "mountPath": CONFIG_MAPS_MOUNT_DIR + config_map}
        for config_map in instance.config_maps
    )
    return mounts


def _volume_mounts(instance: GrafanaInstance) -> list[dict[str, Any]]:
    mounts = [
        {"name": config_map_name(instance), "mountPath": "/etc/grafana/"},
        {"name": GRAFANA_DATA_VOLUME_NAME, "mountPath": "/var/lib/grafana"},
        {"name": GRAFANA_PLUGINS_VOLUME_NAME, "mountPath": "/var/lib/grafana/plugins"},
        {"name": GRAFANA_LOGS_VOLUME_NAME, "mountPath": "/var/log/grafana"},
    ]
    mounts.extend(_extra_mounts(instance))
    return mounts


def _sidecar(instance: GrafanaInstance, container: dict[str, Any]) -> dict[str, Any]:
    """Add the extra volume mounts unless the name or path is already taken."""
    sidecar = copy.deepcopy(container)
    mounts = list(sidecar.get("volumeMounts") or [])
    for mount in _extra_mounts(instance):
        taken = any(
            existing.get("name") == mount["name"] or existing.get("mountPath") == mount["mountPath"]
            for existing in mounts
        )
        if not taken:
            mounts.append(mount)
    if mounts:
        sidecar["volumeMounts"] = mounts
    return sidecar


def _probe(instance: GrafanaInstance, delay: int, timeout: int, failure: int) -> dict[str, Any]:
    return {
        "httpGet": {"path": GRAFANA_HEALTH_ENDPOINT, "port": instance.http_port},
        "initialDelaySeconds": delay,
        "timeoutSeconds": timeout,
        "failureThreshold": failure,
    }


def _secret_env(instance: GrafanaInstance, key: str) -> dict[str, Any]:
    return {
        "name": key,
        "valueFrom": {"secretKeyRef": {"name": admin_secret_name(instance), "key": key}},
    }


def _grafana_container(instance: GrafanaInstance, config_hash: str, image: str) -> dict[str, Any]:
    container: dict[str, Any] = {
        "name": GRAFANA_CONTAINER_NAME,
        "image": image,
        "args": ["-config=/etc/grafana/grafana.ini"],
        "ports": [
            {
                "name": GRAFANA_CONTAINER_PORT_NAME,
                "containerPort": instance.http_port,
                "protocol": "TCP",
            }
        ],
        "env": [
            {"name": LAST_CONFIG_ENV_VAR, "value": config_hash},
            _secret_env(instance, GRAFANA_ADMIN_USER_ENV_VAR),
            _secret_env(instance, GRAFANA_ADMIN_PASSWORD_ENV_VAR),
        ],
        "resources": copy.deepcopy(instance.resources or DEFAULT_RESOURCES),
        "volumeMounts": _volume_mounts(instance),
        "livenessProbe": _probe(instance, 60, 30, 10),
        "readinessProbe": _probe(instance, 5, 3, 1),
        "terminationMessagePath": "/dev/termination-log",
        "terminationMessagePolicy": "File",
        "imagePullPolicy": "IfNotPresent",
    }
    if instance.deployment.container_security_context:
        container["securityContext"] = copy.deepcopy(instance.deployment.container_security_context)
    return container


def _init_container(instance: GrafanaInstance, plugins: list[str], image: str) -> dict[str, Any]:
    return {
        "name": GRAFANA_INIT_CONTAINER_NAME,
        "image": image,
        "env": [{"name": PLUGINS_ENV_VAR, "value": ",".join(plugins)}],
        "resources": copy.deepcopy(instance.init_resources or DEFAULT_INIT_RESOURCES),
        "volumeMounts": [{"name": GRAFANA_PLUGINS_VOLUME_NAME, "mountPath": "/opt/plugins"}],
        "terminationMessagePath": "/dev/termination-log",
        "terminationMessagePolicy": "File",
        "imagePullPolicy": "IfNotPresent",
    }


def _pod_annotations(instance: GrafanaInstance, existing: dict[str, str] | None) -> dict[str, str]:
    fixed = {
        "prometheus.io/scrape": "true",
        "prometheus.io/port": str(instance.http_port),
    }
    return merge_annotations(instance.deployment.annotations, merge_annotations(fixed, existing))


def _deployment_spec(
    instance: GrafanaInstance,
    existing_annotations: dict[str, str] | None,
    config_hash: str,
    plugins: list[str],
    grafana_image: str,
    plugins_init_image: str,
) -> dict[str, Any]:
    settings = instance.deployment
    pod_labels = dict(settings.labels)
    pod_labels.update(selector_labels(instance))

    pod_spec: dict[str, Any] = {
        "volumes": _volumes(instance),
        "initContainers": [_init_container(instance, plugins, plugins_init_image)],
        "containers": [_grafana_container(instance, config_hash, grafana_image)]
        + [_sidecar(instance, container) for container in instance.containers],
        "terminationGracePeriodSeconds": settings.termination_grace_period_seconds,
    }
    if settings.node_selector:
        pod_spec["nodeSelector"] = dict(settings.node_selector)
    if settings.tolerations:
        pod_spec["tolerations"] = copy.deepcopy(settings.tolerations)
    if settings.affinity:
        pod_spec["affinity"] = copy.deepcopy(settings.affinity)
    if settings.security_context:
        pod_spec["securityContext"] = copy.deepcopy(settings.security_context)

    return {
        "replicas": settings.replicas,
        "selector": {"matchLabels": selector_labels(instance)},
        "template": {
            "metadata": {
                "name": deployment_name(instance),
                "labels": pod_labels,
                "annotations": _pod_annotations(instance, existing_annotations),
            },
            "spec": pod_spec,
        },
        "strategy": {
            "type": "RollingUpdate",
            "rollingUpdate": {
                "maxSurge": ROLLING_UPDATE_MAX_SURGE,
                "maxUnavailable": ROLLING_UPDATE_MAX_UNAVAILABLE,
            },
        },
    }


def build_deployment(
    instance: GrafanaInstance,
    current: dict[str, Any] | None = None,
    *,
    config_hash: str,
    plugins: list[str],
    grafana_image: str,
    plugins_init_image: str,
) -> dict[str, Any]:
    """Desired deployment.

    Args:
        instance: The Grafana instance.
        current: The deployment stored in the cluster, if any. Annotations
            already on its pod template are kept.
        config_hash: Digest of the rendered ``grafana.ini``; a change rolls
            the pods.
        plugins: ``name:version`` plugin list for the init container.
        grafana_image: Full Grafana image reference.
        plugins_init_image: Full plugins init container image reference.
    """
    existing_annotations = (
        (((current or {}).get("spec") or {}).get("template") or {}).get("metadata") or {}
    ).get("annotations")
    deployment = start_from(current, "apps/v1", "Deployment")
    if current is None:
        deployment["metadata"] = object_metadata(instance, deployment_name(instance))
    labels = dict(instance.deployment.labels)
    labels.update(selector_labels(instance))
    deployment["metadata"]["labels"] = labels
    deployment["spec"] = _deployment_spec(
        instance,
        existing_annotations,
        config_hash,
        plugins,
        grafana_image,
        plugins_init_image,
    )
    return deployment
