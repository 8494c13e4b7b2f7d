"""GrafanaDataSource handler: create-if-missing, delete on finalize."""

from __future__ import annotations

import httpx

from grafana_operator.cluster import GRAFANA_DATASOURCE, ClusterClient, EventRecorder, KubeObject
from grafana_operator.cluster_state import match_instances
from grafana_operator.controllers.common import InstanceClients, error_message, write_status
from grafana_operator.engine import ReconcileContext, ReconcileHandler
from grafana_operator.errors import GrafanaNotFoundError, OperatorError, ReconcileCancelledError
from grafana_operator.logging import get_logger
from grafana_operator.models import DATASOURCE_FINALIZER, GrafanaDataSource, GrafanaInstance
from grafana_operator.pipelines import DataSourcePipeline
from grafana_operator.types import EventReason, EventType, Phase

logger = get_logger(__name__)

SUCCESS_MESSAGE = "success"


class DataSourceHandler(ReconcileHandler):
    """Reconciles GrafanaDataSource resources.

    Each matching instance is handled on its own: a failure is reported as
    a warning event and a ``failing`` status, and the next instance is still
    tried.
    """

    kind = GRAFANA_DATASOURCE
    finalizer = DATASOURCE_FINALIZER

    def __init__(
        self,
        cluster: ClusterClient,
        recorder: EventRecorder,
        clients: InstanceClients,
        watch_namespace: str = "",
    ) -> None:
        self.cluster = cluster
        self.recorder = recorder
        self.clients = clients
        self.watch_namespace = watch_namespace

    def _instances(self, datasource: GrafanaDataSource) -> list[GrafanaInstance]:
        return match_instances(
            self.cluster,
            datasource.meta.namespace,
            datasource.meta.labels,
            for_datasource=True,
            watch_namespace=self.watch_namespace,
        )

    def sync(self, ctx: ReconcileContext, obj: KubeObject) -> None:
        datasource = GrafanaDataSource.from_object(obj)
        log = logger.with_context(
            kind=self.kind.kind, namespace=datasource.meta.namespace, resource=datasource.meta.name
        )

        # Each status write moves the resource version on.
        current = obj
        for instance in self._instances(datasource):
            ctx.check_cancelled()
            instance_log = log.with_context(instance=instance.meta.name)
            try:
                client = self.clients.for_instance(instance, ctx)
                try:
                    client.get_datasource_by_name(datasource.name)
                    instance_log.debug("Datasource %s already exists", datasource.name)
                    continue
                except GrafanaNotFoundError:
                    pass
                client.create_datasource(DataSourcePipeline(datasource).process())
            except ReconcileCancelledError:
                raise
            except (OperatorError, httpx.HTTPError) as e:
                instance_log.warning("Failed to submit datasource: %s", e)
                current = self._fail(current, e)
                continue

            instance_log.info(
                "datasource %s/%s successfully imported",
                datasource.meta.namespace,
                datasource.meta.name,
            )
            current = write_status(
                self.cluster,
                self.kind,
                current,
                {"phase": str(Phase.RECONCILING), "message": SUCCESS_MESSAGE},
                instance_log,
            )

    def finalize(self, ctx: ReconcileContext, obj: KubeObject) -> None:
        """Delete the data source from every matching instance.

        Raises:
            OperatorError: If a remote delete fails for a reason other than
                the data source already being gone.
        """
        datasource = GrafanaDataSource.from_object(obj)
        log = logger.with_context(
            kind=self.kind.kind, namespace=datasource.meta.namespace, resource=datasource.meta.name
        )

        for instance in self._instances(datasource):
            ctx.check_cancelled()
            instance_log = log.with_context(instance=instance.meta.name)
            try:
                client = self.clients.for_instance(instance, ctx)
            except OperatorError as e:
                instance_log.warning("Cannot reach Grafana, skipping cleanup: %s", e)
                continue
            try:
                client.delete_datasource_by_name(datasource.name)
            except GrafanaNotFoundError:
                instance_log.info("Datasource %s already deleted or never installed", datasource.name)
            else:
                instance_log.info("Deleted datasource %s", datasource.name)

    def report_failure(self, obj: KubeObject, error: BaseException) -> None:
        self._fail(obj, error)

    def _fail(self, obj: KubeObject, error: BaseException) -> KubeObject:
        message = error_message(error)
        self.recorder.event(obj, EventType.WARNING, EventReason.PROCESSING_ERROR, message)
        namespace = (obj.get("metadata") or {}).get("namespace", "")
        name = (obj.get("metadata") or {}).get("name", "")
        return write_status(
            self.cluster,
            self.kind,
            obj,
            {"phase": str(Phase.FAILING), "message": message},
            logger.with_context(kind=self.kind.kind, namespace=namespace, resource=name),
        )


__all__ = ["DataSourceHandler"]
