"""Desired-state planning for the children of a Grafana instance.

:func:`plan` rebuilds every child from the instance spec and compares it with
the snapshot. Only the sections the operator owns (labels, annotations,
``spec`` and ``data``) are compared, and only one way: every value the
operator sets must be present in the stored object, while fields the
orchestrator adds (defaults, allocated IPs, resource versions) are ignored.
Running the planner twice against an unchanged spec and snapshot therefore
yields only :class:`Noop` actions the second time.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from grafana_operator.cluster import (
    CONFIG_MAP,
    DEPLOYMENT,
    INGRESS,
    ROUTE,
    SECRET,
    SERVICE,
    KubeObject,
    ResourceKind,
)
from grafana_operator.cluster_state import ClusterStateSnapshot
from grafana_operator.config import (
    DEFAULT_GRAFANA_IMAGE,
    DEFAULT_GRAFANA_IMAGE_TAG,
    DEFAULT_PLUGINS_INIT_IMAGE,
    DEFAULT_PLUGINS_INIT_TAG,
)
from grafana_operator.controller_config import (
    CONFIG_GRAFANA_IMAGE,
    CONFIG_GRAFANA_IMAGE_TAG,
    CONFIG_PLUGINS_INIT_IMAGE,
    CONFIG_PLUGINS_INIT_TAG,
    ControllerConfig,
)
from grafana_operator.model import (
    build_admin_secret,
    build_config_map,
    build_deployment,
    build_ingress,
    build_route,
    build_service,
    render_grafana_ini,
)
from grafana_operator.models import GrafanaInstance

OWNED_SECTIONS: tuple[tuple[str, ...], ...] = (
    ("metadata", "labels"),
    ("metadata", "annotations"),
    ("spec",),
    ("data",),
)


@dataclass(frozen=True)
class CreateObject:
    kind: ResourceKind
    desired: KubeObject


@dataclass(frozen=True)
class UpdateObject:
    kind: ResourceKind
    current: KubeObject
    desired: KubeObject


@dataclass(frozen=True)
class DeleteObject:
    kind: ResourceKind
    current: KubeObject


@dataclass(frozen=True)
class Noop:
    kind: ResourceKind
    current: KubeObject


type ReconcileAction = CreateObject | UpdateObject | DeleteObject | Noop


def is_subset(desired: Any, current: Any) -> bool:
    """Whether every value in ``desired`` is present and equal in ``current``.

    Dicts are compared key by key, lists element by element with equal
    length. An empty or None desired value matches an absent current one.
    """
    if isinstance(desired, dict):
        if not isinstance(current, dict):
            return not desired
        return all(is_subset(value, current.get(key)) for key, value in desired.items())
    if isinstance(desired, list):
        if not isinstance(current, list):
            return not desired
        return len(desired) == len(current) and all(
            is_subset(d, c) for d, c in zip(desired, current, strict=True)
        )
    if desired is None:
        return True
    return desired == current


def _section(obj: KubeObject, path: tuple[str, ...]) -> Any:
    value: Any = obj
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def differs(desired: KubeObject, current: KubeObject) -> bool:
    """Whether an update is needed to bring ``current`` to ``desired``."""
    return not all(
        is_subset(_section(desired, path), _section(current, path)) for path in OWNED_SECTIONS
    )


def _converge(kind: ResourceKind, current: KubeObject | None, desired: KubeObject) -> ReconcileAction:
    if current is None:
        return CreateObject(kind, desired)
    if differs(desired, current):
        return UpdateObject(kind, current, desired)
    return Noop(kind, current)


def _image(config: ControllerConfig, image_key: str, image: str, tag_key: str, tag: str) -> str:
    return f"{config.get_config_string(image_key, image)}:{config.get_config_string(tag_key, tag)}"


def plan(
    instance: GrafanaInstance,
    snapshot: ClusterStateSnapshot,
    controller_config: ControllerConfig,
) -> list[ReconcileAction]:
    """Compute the ordered actions that converge the instance's children.

    Order: config map, admin secret, service, ingress or route, deployment.
    The deployment comes last so that it rolls against an already updated
    configuration.

    Args:
        instance: The Grafana instance.
        snapshot: Its freshly read children.
        controller_config: Shared cache providing image overrides, route
            support and the plugin list.
    """
    _, config_hash = render_grafana_ini(instance)
    actions: list[ReconcileAction] = [
        _converge(CONFIG_MAP, snapshot.config_map, build_config_map(instance, snapshot.config_map)),
        _converge(SECRET, snapshot.admin_secret, build_admin_secret(instance, snapshot.admin_secret)),
        _converge(SERVICE, snapshot.service, build_service(instance, snapshot.service)),
    ]

    if controller_config.route_supported:
        exposure, current, builder = ROUTE, snapshot.route, build_route
    else:
        exposure, current, builder = INGRESS, snapshot.ingress, build_ingress
    if instance.ingress_enabled:
        actions.append(_converge(exposure, current, builder(instance, current)))
    elif current is not None:
        actions.append(DeleteObject(exposure, current))

    grafana_image = _image(
        controller_config,
        CONFIG_GRAFANA_IMAGE,
        DEFAULT_GRAFANA_IMAGE,
        CONFIG_GRAFANA_IMAGE_TAG,
        DEFAULT_GRAFANA_IMAGE_TAG,
    )
    plugins_init_image = _image(
        controller_config,
        CONFIG_PLUGINS_INIT_IMAGE,
        DEFAULT_PLUGINS_INIT_IMAGE,
        CONFIG_PLUGINS_INIT_TAG,
        DEFAULT_PLUGINS_INIT_TAG,
    )
    deployment = build_deployment(
        instance,
        snapshot.deployment,
        config_hash=config_hash,
        plugins=controller_config.get_plugins(),
        grafana_image=grafana_image,
        plugins_init_image=plugins_init_image,
    )
    actions.append(_converge(DEPLOYMENT, snapshot.deployment, deployment))
    return actions


__all__ = [
    "CreateObject",
    "DeleteObject",
    "Noop",
    "ReconcileAction",
    "UpdateObject",
    "differs",
    "is_subset",
    "plan",
]
