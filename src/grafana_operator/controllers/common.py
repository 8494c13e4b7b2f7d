"""Helpers shared by the per-kind handlers."""

from __future__ import annotations

import copy
from typing import Any

from grafana_operator.cluster import ClusterClient, KubeObject, ResourceKind
from grafana_operator.cluster_state import (
    ClusterStateSnapshot,
    GrafanaClientFactory,
    new_grafana_client,
)
from grafana_operator.controller_config import ControllerConfig
from grafana_operator.engine import ReconcileContext
from grafana_operator.errors import ClusterConflictError, ClusterNotFoundError
from grafana_operator.grafana_client import DEFAULT_CLIENT_TIMEOUT, GrafanaClient, GrafanaRestClient
from grafana_operator.logging import ContextAdapter
from grafana_operator.models import GrafanaInstance


def error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__


def write_status(
    cluster: ClusterClient,
    kind: ResourceKind,
    obj: KubeObject,
    status: dict[str, Any],
    log: ContextAdapter,
) -> KubeObject:
    """Merge ``status`` into the object's status subresource.

    Nothing is written when the status is unchanged. Conflicts and a
    vanished object are expected and only logged at debug:
    the next pass writes the status again.

    Returns:
        The stored object after the write, or ``obj`` when nothing was
        written. Later writes in the same pass must start from it.
    """
    body = copy.deepcopy(obj)
    merged = dict(obj.get("status") or {})
    merged.update(status)
    if merged == (obj.get("status") or {}):
        return obj
    body["status"] = merged
    try:
        return cluster.update_status(kind, body)
    except ClusterConflictError as e:
        log.debug("Conflict writing status, retrying on next reconcile: %s", e)
    except ClusterNotFoundError:
        log.debug("Object gone before status could be written")
    return obj


class InstanceClients:
    """Builds a Grafana client per instance from freshly read cluster state.

    Args:
        cluster: Orchestrator client.
        controller_config: Shared cache; provides route support.
        timeout: Default per-request timeout.
        factory: Client constructor, replaced in tests.
    """

    def __init__(
        self,
        cluster: ClusterClient,
        controller_config: ControllerConfig,
        timeout: float = DEFAULT_CLIENT_TIMEOUT,
        factory: GrafanaClientFactory = GrafanaRestClient,
    ) -> None:
        self.cluster = cluster
        self.controller_config = controller_config
        self.timeout = timeout
        self.factory = factory

    def for_instance(self, instance: GrafanaInstance, ctx: ReconcileContext) -> GrafanaClient:
        """Raises FatalError when no admin URL or credentials are available."""
        snapshot = ClusterStateSnapshot.read(
            self.cluster, instance, self.controller_config.route_supported
        )
        return new_grafana_client(
            instance,
            snapshot,
            timeout=self.timeout,
            cancel_event=ctx.cancel_event,
            factory=self.factory,
        )
