"""Service, ingress and route: how Grafana is reached."""

from __future__ import annotations

import copy
from typing import Any

from grafana_operator.model.names import (
    GRAFANA_CONTAINER_PORT_NAME,
    GRAFANA_HTTP_PORT_NAME,
    ingress_name,
    object_metadata,
    route_name,
    selector_labels,
    service_name,
    start_from,
)
from grafana_operator.models import GrafanaInstance, IngressSettings


def service_port(instance: GrafanaInstance) -> int:
    """Port the service exposes: ``spec.service.port`` or the HTTP port."""
    return instance.service.port or instance.http_port


def _labels(instance: GrafanaInstance, declared: dict[str, str]) -> dict[str, str]:
    labels = dict(declared)
    labels.update(selector_labels(instance))
    return labels


def build_service(instance: GrafanaInstance, current: dict[str, Any] | None = None) -> dict[str, Any]:
    """Desired service.

    Fields allocated by the orchestrator (cluster IP, node ports) are kept
    from the current object.
    """
    settings = instance.service
    service = start_from(current, "v1", "Service")
    if current is None:
        service["metadata"] = object_metadata(instance, service_name(instance))
    service["metadata"]["labels"] = _labels(instance, settings.labels)
    service["metadata"]["annotations"] = dict(settings.annotations)

    port: dict[str, Any] = {
        "name": GRAFANA_HTTP_PORT_NAME,
        "port": service_port(instance),
        "protocol": "TCP",
        "targetPort": GRAFANA_CONTAINER_PORT_NAME,
    }
    spec = copy.deepcopy(service.get("spec") or {})
    for existing in spec.get("ports") or []:
        if existing.get("name") == GRAFANA_HTTP_PORT_NAME and existing.get("nodePort"):
            if settings.type in ("NodePort", "LoadBalancer"):
                port["nodePort"] = existing["nodePort"]
    spec["type"] = settings.type
    spec["ports"] = [port]
    spec["selector"] = selector_labels(instance)
    service["spec"] = spec
    return service


def _ingress_settings(instance: GrafanaInstance) -> IngressSettings:
    return instance.ingress if instance.ingress is not None else IngressSettings()


def build_ingress(instance: GrafanaInstance, current: dict[str, Any] | None = None) -> dict[str, Any]:
    """Desired ``networking.k8s.io/v1`` ingress routing to the service."""
    settings = _ingress_settings(instance)
    ingress = start_from(current, "networking.k8s.io/v1", "Ingress")
    if current is None:
        ingress["metadata"] = object_metadata(instance, ingress_name(instance))
    ingress["metadata"]["labels"] = _labels(instance, settings.labels)
    ingress["metadata"]["annotations"] = dict(settings.annotations)

    rule: dict[str, Any] = {
        "http": {
            "paths": [
                {
                    "path": settings.path,
                    "pathType": "Prefix",
                    "backend": {
                        "service": {
                            "name": service_name(instance),
                            "port": {"name": GRAFANA_HTTP_PORT_NAME},
                        }
                    },
                }
            ]
        }
    }
    if settings.hostname:
        rule["host"] = settings.hostname

    spec: dict[str, Any] = {"rules": [rule]}
    if settings.ingress_class_name:
        spec["ingressClassName"] = settings.ingress_class_name
    if settings.tls_enabled:
        tls: dict[str, Any] = {"secretName": settings.tls_secret_name}
        if settings.hostname:
            tls["hosts"] = [settings.hostname]
        spec["tls"] = [tls]
    ingress["spec"] = spec
    return ingress


def build_route(instance: GrafanaInstance, current: dict[str, Any] | None = None) -> dict[str, Any]:
    """Desired OpenShift route, used in place of an ingress where supported.

    An empty host is left for the router to assign and is kept from the
    current object.
    """
    settings = _ingress_settings(instance)
    route = start_from(current, "route.openshift.io/v1", "Route")
    if current is None:
        route["metadata"] = object_metadata(instance, route_name(instance))
    route["metadata"]["labels"] = _labels(instance, settings.labels)
    route["metadata"]["annotations"] = dict(settings.annotations)

    current_spec = (current or {}).get("spec") or {}
    spec: dict[str, Any] = {
        "path": settings.path,
        "to": {"kind": "Service", "name": service_name(instance), "weight": 100},
        "port": {"targetPort": GRAFANA_HTTP_PORT_NAME},
        "wildcardPolicy": "None",
    }
    host = settings.hostname or current_spec.get("host")
    if host:
        spec["host"] = host
    if settings.tls_enabled:
        spec["tls"] = {"termination": "edge"}
    route["spec"] = spec
    return route
