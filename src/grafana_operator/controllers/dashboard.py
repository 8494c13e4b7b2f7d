"""GrafanaDashboard handler: create-if-missing, delete on finalize.

A dashboard is submitted to every matching Grafana instance where no
dashboard with the same title exists yet. An existing remote dashboard is
left alone, even if its content has drifted: once created, Grafana is the
source of truth for in-place edits.
"""

from __future__ import annotations

import httpx

from grafana_operator.cluster import GRAFANA_DASHBOARD, ClusterClient, EventRecorder, KubeObject
from grafana_operator.cluster_state import match_instances
from grafana_operator.controller_config import ControllerConfig
from grafana_operator.controllers.common import InstanceClients, error_message
from grafana_operator.engine import ReconcileContext, ReconcileHandler, ReconcileRequest
from grafana_operator.errors import (
    GrafanaNotFoundError,
    OperatorError,
    ReconcileCancelledError,
)
from grafana_operator.grafana_client import GrafanaClient, RemoteObjectHandle
from grafana_operator.logging import ContextAdapter, get_logger
from grafana_operator.models import DASHBOARD_FINALIZER, GrafanaDashboard, GrafanaInstance
from grafana_operator.pipelines import DashboardPipeline, JsonnetEvaluator, UrlFetcher, encode_dashboard
from grafana_operator.types import EventReason, EventType

logger = get_logger(__name__)


def find_dashboards(client: GrafanaClient, title: str) -> list[RemoteObjectHandle]:
    """Remote dashboards whose title is exactly ``title``.

    Grafana's search matches substrings, so hits are filtered on the title.
    A 404 from the search means no hits.
    """
    try:
        hits = client.get_dashboards_by_name(title)
    except GrafanaNotFoundError:
        return []
    return [hit for hit in hits if hit.title == title]


class DashboardHandler(ReconcileHandler):
    """Reconciles GrafanaDashboard resources.

    Args:
        cluster: Orchestrator client.
        recorder: Event recorder.
        controller_config: Shared cache; receives the dashboard's plugins.
        clients: Builds Grafana clients per instance.
        jsonnet: Jsonnet evaluator for the content pipeline.
        fetch: URL fetcher for the content pipeline.
        watch_namespace: Restrict instance lookup to this namespace.
    """

    kind = GRAFANA_DASHBOARD
    finalizer = DASHBOARD_FINALIZER

    def __init__(
        self,
        cluster: ClusterClient,
        recorder: EventRecorder,
        controller_config: ControllerConfig,
        clients: InstanceClients,
        jsonnet: JsonnetEvaluator | None = None,
        fetch: UrlFetcher | None = None,
        watch_namespace: str = "",
    ) -> None:
        self.cluster = cluster
        self.recorder = recorder
        self.controller_config = controller_config
        self.clients = clients
        self.jsonnet = jsonnet
        self.fetch = fetch
        self.watch_namespace = watch_namespace

    def _instances(self, dashboard: GrafanaDashboard) -> list[GrafanaInstance]:
        return match_instances(
            self.cluster,
            dashboard.meta.namespace,
            dashboard.meta.labels,
            watch_namespace=self.watch_namespace,
        )

    def sync(self, ctx: ReconcileContext, obj: KubeObject) -> None:
        dashboard = GrafanaDashboard.from_object(obj)
        log = logger.with_context(
            kind=self.kind.kind, namespace=dashboard.meta.namespace, resource=dashboard.meta.name
        )
        instances = self._instances(dashboard)
        if not instances:
            log.debug("No ready Grafana instance matches")

        for instance in instances:
            ctx.check_cancelled()
            instance_log = log.with_context(instance=instance.meta.name)
            try:
                self._submit(ctx, instance, dashboard, instance_log)
            except ReconcileCancelledError:
                raise
            except (OperatorError, httpx.HTTPError) as e:
                instance_log.warning("Failed to submit dashboard: %s", e)
                self.recorder.event(
                    obj, EventType.WARNING, EventReason.PROCESSING_ERROR, error_message(e)
                )

    def _pipeline(self, dashboard: GrafanaDashboard) -> DashboardPipeline:
        return DashboardPipeline(self.cluster, dashboard, jsonnet=self.jsonnet, fetch=self.fetch)

    def _submit(
        self,
        ctx: ReconcileContext,
        instance: GrafanaInstance,
        dashboard: GrafanaDashboard,
        log: ContextAdapter,
    ) -> None:
        client = self.clients.for_instance(instance, ctx)
        board = None
        title = dashboard.declared_title()
        if not title:
            # URL, config map and jsonnet content only carry their title once resolved.
            board = self._pipeline(dashboard).resolve()
            title = dashboard.dashboard_name(board)
        if find_dashboards(client, title):
            log.debug("Dashboard %s already exists", title)
            # Keep the plugin list complete after an operator restart.
            self.controller_config.set_plugins_for(dashboard)
            return

        if board is None:
            board = self._pipeline(dashboard).resolve()
        folder = client.get_or_create_namespace_folder(dashboard.meta.namespace)
        client.create_or_update_dashboard(encode_dashboard(board), folder.id)
        message = f"dashboard {dashboard.meta.namespace}/{dashboard.meta.name} successfully submitted"
        log.info("%s", message)
        self.recorder.event(dashboard.raw, EventType.NORMAL, EventReason.SUCCESS, message)
        self.controller_config.set_plugins_for(dashboard)

    def _remote_identity(self, dashboard: GrafanaDashboard, log: ContextAdapter) -> tuple[str, str]:
        """Title and UID the dashboard was submitted under."""
        if dashboard.declared_title():
            return dashboard.dashboard_name(), dashboard.uid()
        try:
            board = self._pipeline(dashboard).resolve()
        except (OperatorError, httpx.HTTPError) as e:
            log.info("Cannot resolve dashboard content, deleting by uid only: %s", e)
            return dashboard.meta.name, dashboard.uid()
        return dashboard.dashboard_name(board), dashboard.uid(board)

    def finalize(self, ctx: ReconcileContext, obj: KubeObject) -> None:
        """Delete the dashboard from every matching instance.

        The dashboard is looked up by title; without a hit its UID is
        deleted directly, and a missing dashboard counts as deleted.

        Raises:
            OperatorError: If a remote delete fails for a reason other than
                the dashboard already being gone.
        """
        dashboard = GrafanaDashboard.from_object(obj)
        log = logger.with_context(
            kind=self.kind.kind, namespace=dashboard.meta.namespace, resource=dashboard.meta.name
        )
        instances = self._instances(dashboard)
        title, uid = self._remote_identity(dashboard, log) if instances else ("", "")

        for instance in instances:
            ctx.check_cancelled()
            instance_log = log.with_context(instance=instance.meta.name)
            try:
                client = self.clients.for_instance(instance, ctx)
            except OperatorError as e:
                instance_log.warning("Cannot reach Grafana, skipping cleanup: %s", e)
                continue

            hits = find_dashboards(client, title)
            if len(hits) > 1:
                instance_log.info("Found %d dashboards named %s, deleting the first", len(hits), title)
            target = hits[0].uid if hits else uid
            try:
                client.delete_dashboard_by_uid(target)
            except GrafanaNotFoundError:
                instance_log.debug("Dashboard %s already deleted", title)
            else:
                instance_log.info("Deleted dashboard %s", title)

        self.controller_config.remove_dashboard(dashboard.meta.namespace, dashboard.meta.name)

    def on_missing(self, request: ReconcileRequest) -> None:
        self.controller_config.remove_dashboard(request.namespace, request.name)

    def report_failure(self, obj: KubeObject, error: BaseException) -> None:
        self.recorder.event(obj, EventType.WARNING, EventReason.PROCESSING_ERROR, error_message(error))


__all__ = ["DashboardHandler", "find_dashboards"]
