"""Per-kind reconcile handlers plugged into the generic engine."""

from grafana_operator.controllers.dashboard import DashboardHandler
from grafana_operator.controllers.datasource import DataSourceHandler
from grafana_operator.controllers.grafana import GrafanaHandler

__all__ = [
    "DashboardHandler",
    "DataSourceHandler",
    "GrafanaHandler",
]
