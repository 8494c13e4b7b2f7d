"""Deterministic builders for the child objects of a Grafana instance.

Each builder takes the instance (and, where relevant, the object currently
stored in the cluster) and returns the desired Kubernetes dict. The same
inputs always produce the same output. Fields the operator does not own are
carried over from the current object.
"""

from grafana_operator.model.admin_secret import admin_credentials, build_admin_secret
from grafana_operator.model.config_map import build_config_map, render_grafana_ini
from grafana_operator.model.deployment import build_deployment
from grafana_operator.model.network import build_ingress, build_route, build_service

__all__ = [
    "admin_credentials",
    "build_admin_secret",
    "build_config_map",
    "build_deployment",
    "build_ingress",
    "build_route",
    "build_service",
    "render_grafana_ini",
]
