"""Grafana operator - reconciles Grafana instances, dashboards and data sources."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("grafana-operator")
except PackageNotFoundError:
    # Package is not installed (e.g., running from source without pip install)
    __version__ = "0.0.0.dev0"

# Re-export core public API
from grafana_operator.app import main
from grafana_operator.manager import Operator

__all__ = [
    "__version__",
    "Operator",
    "main",
]
