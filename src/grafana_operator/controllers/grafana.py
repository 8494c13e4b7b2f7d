"""Grafana handler: continuous enforcement of an instance's children.

Every pass reads the children fresh, plans the actions that converge them
and applies the plan. Unlike dashboards and data sources, drift in a child
is always corrected.
"""

from __future__ import annotations

from typing import Any

from grafana_operator.action_runner import ActionRunner
from grafana_operator.cluster import (
    GRAFANA,
    GRAFANA_DASHBOARD,
    GRAFANA_DATASOURCE,
    ClusterClient,
    EventRecorder,
    KubeObject,
)
from grafana_operator.cluster_state import ClusterStateSnapshot, label_selectors
from grafana_operator.controller_config import ControllerConfig
from grafana_operator.controllers.common import error_message, write_status
from grafana_operator.engine import ReconcileContext, ReconcileHandler, ReconcileRequest
from grafana_operator.logging import get_logger
from grafana_operator.models import GrafanaInstance
from grafana_operator.planner import plan
from grafana_operator.selectors import matches_selectors
from grafana_operator.types import EventReason, EventType, Phase

logger = get_logger(__name__)

SUCCESS_MESSAGE = "success"


class GrafanaHandler(ReconcileHandler):
    """Reconciles Grafana instances.

    Args:
        cluster: Orchestrator client.
        recorder: Event recorder.
        controller_config: Shared cache; provides images, route support and
            plugins, and is cleaned up when the instance disappears.
    """

    kind = GRAFANA

    def __init__(
        self,
        cluster: ClusterClient,
        recorder: EventRecorder,
        controller_config: ControllerConfig,
    ) -> None:
        self.cluster = cluster
        self.recorder = recorder
        self.controller_config = controller_config

    def sync(self, ctx: ReconcileContext, obj: KubeObject) -> None:
        instance = GrafanaInstance.from_object(obj)
        log = logger.with_context(
            kind=self.kind.kind, namespace=instance.meta.namespace, resource=instance.meta.name
        )

        snapshot = ClusterStateSnapshot.read(
            self.cluster, instance, self.controller_config.route_supported
        )
        ctx.check_cancelled()
        actions = plan(instance, snapshot, self.controller_config)
        result = ActionRunner(self.cluster, obj).run(actions)
        if result.created or result.updated or result.deleted:
            log.info(
                "Applied plan: %d created, %d updated, %d deleted",
                len(result.created),
                len(result.updated),
                len(result.deleted),
            )

        status: dict[str, Any] = {
            "phase": str(Phase.RECONCILING),
            "message": SUCCESS_MESSAGE,
            "installedDashboards": self._installed(instance, for_datasource=False),
            "installedDatasources": self._installed(instance, for_datasource=True),
        }
        write_status(self.cluster, self.kind, obj, status, log)
        log.debug("Desired cluster state met")

    def _installed(self, instance: GrafanaInstance, *, for_datasource: bool) -> list[dict[str, str]]:
        """Resources in the instance namespace whose labels match its selectors."""
        kind = GRAFANA_DATASOURCE if for_datasource else GRAFANA_DASHBOARD
        selectors = label_selectors(instance, for_datasource)
        installed = []
        for item in self.cluster.list(kind, instance.meta.namespace):
            metadata = item.get("metadata") or {}
            if matches_selectors(metadata.get("labels") or {}, selectors):
                installed.append({"name": metadata.get("name", "")})
        return sorted(installed, key=lambda ref: ref["name"])

    def on_missing(self, request: ReconcileRequest) -> None:
        logger.info("Grafana %s is gone, cleaning up shared state", request)
        self.controller_config.cleanup()

    def report_failure(self, obj: KubeObject, error: BaseException) -> None:
        message = error_message(error)
        self.recorder.event(obj, EventType.WARNING, EventReason.PROCESSING_ERROR, message)
        metadata = obj.get("metadata") or {}
        write_status(
            self.cluster,
            self.kind,
            obj,
            {"phase": str(Phase.FAILING), "message": message},
            logger.with_context(
                kind=self.kind.kind,
                namespace=metadata.get("namespace", ""),
                resource=metadata.get("name", ""),
            ),
        )


__all__ = ["GrafanaHandler"]
