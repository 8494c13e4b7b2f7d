"""Composition of the controllers, the watcher and shutdown.

The :class:`Operator` is a thin orchestrator: it builds one reconcile engine
and controller per kind, wires a watcher to feed them, and tears everything
down when the shutdown handler fires. It also answers the health checker's
questions about the running process.
"""

from __future__ import annotations

import functools
from collections.abc import Mapping

from grafana_operator.cluster import (
    GRAFANA,
    GRAFANA_DASHBOARD,
    GRAFANA_DATASOURCE,
    OWNED_KINDS,
    ROUTE,
    ClusterClient,
    EventRecorder,
)
from grafana_operator.cluster_state import GrafanaClientFactory
from grafana_operator.config import Config
from grafana_operator.controller import Controller
from grafana_operator.controller_config import (
    CONFIG_JSONNET_BASE_PATH,
    ControllerConfig,
)
from grafana_operator.controllers import DashboardHandler, DataSourceHandler, GrafanaHandler
from grafana_operator.controllers.common import InstanceClients
from grafana_operator.engine import ReconcileEngine
from grafana_operator.grafana_client import GrafanaRestClient
from grafana_operator.logging import get_logger
from grafana_operator.pipelines import JsonnetEvaluator, UrlFetcher, fetch_url
from grafana_operator.shutdown import ShutdownHandler
from grafana_operator.watcher import WatchSource, Watcher, grafana_owner_key

logger = get_logger(__name__)

# How long run-once mode waits for the queues to drain (seconds)
DEFAULT_DRAIN_TIMEOUT = 300.0


class Operator:
    """Runs the Grafana, dashboard and data source controllers.

    Args:
        cluster: Orchestrator client.
        recorder: Event recorder.
        controller_config: Shared configuration cache, seeded at bootstrap.
        config: Process configuration.
        shutdown: Shutdown coordinator; its event cancels in-flight reconciles.
        grafana_client_factory: Builds Grafana clients, replaced in tests.
        fetch: URL fetcher for dashboards, replaced in tests. Defaults to
            :func:`fetch_url` with the configured client timeout.
    """

    def __init__(
        self,
        cluster: ClusterClient,
        recorder: EventRecorder,
        controller_config: ControllerConfig,
        config: Config | None = None,
        shutdown: ShutdownHandler | None = None,
        grafana_client_factory: GrafanaClientFactory = GrafanaRestClient,
        fetch: UrlFetcher | None = None,
    ) -> None:
        self.cluster = cluster
        self.config = config or Config()
        self.shutdown = shutdown or ShutdownHandler()
        self.controller_config = controller_config
        watch_namespace = self.config.watch_namespace

        clients = InstanceClients(
            cluster,
            controller_config,
            timeout=self.config.client_timeout,
            factory=grafana_client_factory,
        )
        if fetch is None:
            fetch = functools.partial(fetch_url, timeout=self.config.client_timeout)
        jsonnet = JsonnetEvaluator(
            controller_config.get_config_string(
                CONFIG_JSONNET_BASE_PATH, self.config.jsonnet_location
            )
        )

        handlers = {
            "grafana": GrafanaHandler(cluster, recorder, controller_config),
            "grafanadashboard": DashboardHandler(
                cluster,
                recorder,
                controller_config,
                clients,
                jsonnet=jsonnet,
                fetch=fetch,
                watch_namespace=watch_namespace,
            ),
            "grafanadatasource": DataSourceHandler(
                cluster, recorder, clients, watch_namespace=watch_namespace
            ),
        }
        self.controllers: dict[str, Controller] = {
            name: Controller(
                name,
                ReconcileEngine(cluster, handler, requeue_delay=self.config.requeue_delay),
                max_workers=self.config.max_concurrent_reconciles,
                cancel_event=self.shutdown.event,
            )
            for name, handler in handlers.items()
        }

        grafana_controller = self.controllers["grafana"]
        sources = [
            WatchSource(GRAFANA, grafana_controller),
            WatchSource(GRAFANA_DASHBOARD, self.controllers["grafanadashboard"]),
            WatchSource(GRAFANA_DATASOURCE, self.controllers["grafanadatasource"]),
        ]
        for kind in OWNED_KINDS:
            if kind == ROUTE and not controller_config.route_supported:
                continue
            sources.append(WatchSource(kind, grafana_controller, grafana_owner_key))

        self.watcher = Watcher(
            cluster,
            sources,
            namespace=watch_namespace or None,
            resync_period=self.config.resync_period,
        )

    @property
    def shutting_down(self) -> bool:
        return self.shutdown.shutdown_requested

    def controller_states(self) -> Mapping[str, bool]:
        return {name: controller.running for name, controller in self.controllers.items()}

    def _start_controllers(self) -> None:
        for controller in self.controllers.values():
            controller.start()

    def _stop_controllers(self) -> None:
        for controller in self.controllers.values():
            controller.shutdown(wait=True)

    def run(self) -> None:
        """Watch and reconcile until shutdown is requested."""
        logger.info(
            "Starting operator (namespace: %s, workers per kind: %d, requeue delay: %ss)",
            self.config.watch_namespace or "<all>",
            self.config.max_concurrent_reconciles,
            self.config.requeue_delay,
        )
        self._start_controllers()
        self.watcher.start()
        try:
            self.shutdown.wait()
        finally:
            logger.info("Stopping watchers and draining workers...")
            self.watcher.stop()
            self._stop_controllers()
        logger.info("Operator shutdown complete")

    def run_once(self, drain_timeout: float = DEFAULT_DRAIN_TIMEOUT) -> bool:
        """Reconcile every existing object once, then stop.

        Returns:
            True if every queue drained before the timeout.
        """
        for controller in self.controllers.values():
            controller.requeue = False
        self._start_controllers()
        drained = True
        try:
            count = self.watcher.list_once()
            logger.info("Enqueued %d objects for a single pass", count)
            for controller in self.controllers.values():
                if not controller.wait_idle(timeout=drain_timeout):
                    logger.warning("Controller %s did not drain in %ss", controller.name, drain_timeout)
                    drained = False
        finally:
            self._stop_controllers()
        return drained


__all__ = [
    "DEFAULT_DRAIN_TIMEOUT",
    "Operator",
]
