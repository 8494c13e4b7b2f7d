"""Process-wide configuration cache shared by the controllers.

The cache holds image overrides, feature-detection flags and the plugins
declared by successfully submitted dashboards. It is mutated concurrently by
reconcile workers of every kind, so all access goes through a re-entrant lock.

Nothing in here decides whether a reconcile is correct: it only influences
image tags and the plugin list of the Grafana deployment. Readers may observe
a slightly stale view (a dashboard submitted by another worker a moment ago),
which the next periodic pass corrects.

An instance is created once at bootstrap and passed explicitly to every
controller; there is no module-level singleton.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from grafana_operator.models import GrafanaDashboard

# Keys for configuration items
CONFIG_GRAFANA_IMAGE = "grafana.image.url"
CONFIG_GRAFANA_IMAGE_TAG = "grafana.image.tag"
CONFIG_PLUGINS_INIT_IMAGE = "grafana.plugins.init.container.image.url"
CONFIG_PLUGINS_INIT_TAG = "grafana.plugins.init.container.image.tag"
CONFIG_OPERATOR_NAMESPACE = "grafana.operator.namespace"
CONFIG_JSONNET_BASE_PATH = "grafonnet.location"
CONFIG_ROUTE_SUPPORTED = "openshift.route.supported"

type DashboardKey = tuple[str, str]


class ControllerConfig:
    """Lock-guarded key/value store plus the dashboard to plugins mapping.

    Thread Safety:
        Every public method acquires the internal lock; returned collections
        are copies.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._values: dict[str, Any] = {}
        self._plugins: dict[DashboardKey, list[str]] = {}

    def add_config_item(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[key] = value

    def remove_config_item(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)

    def get_config_item(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._values.get(key, default)

    def get_config_string(self, key: str, default: str) -> str:
        """Return a string item, falling back when it is missing or empty."""
        value = self.get_config_item(key)
        if isinstance(value, str) and value:
            return value
        return default

    def get_config_bool(self, key: str, default: bool = False) -> bool:
        value = self.get_config_item(key)
        if isinstance(value, bool):
            return value
        return default

    @property
    def route_supported(self) -> bool:
        """Whether the cluster serves the OpenShift route API."""
        return self.get_config_bool(CONFIG_ROUTE_SUPPORTED, False)

    def set_plugins_for(self, dashboard: GrafanaDashboard) -> None:
        """Record the plugins declared by a successfully submitted dashboard.

        Args:
            dashboard: The dashboard whose ``spec.plugins`` are recorded.
        """
        key = (dashboard.meta.namespace, dashboard.meta.name)
        with self._lock:
            self._plugins[key] = [plugin.spec_string() for plugin in dashboard.plugins]

    def remove_dashboard(self, namespace: str, name: str) -> None:
        with self._lock:
            self._plugins.pop((namespace, name), None)

    def has_dashboard(self, namespace: str, name: str) -> bool:
        with self._lock:
            return (namespace, name) in self._plugins

    def get_plugins(self) -> list[str]:
        """Return the de-duplicated, sorted plugin list across all dashboards.

        Returns:
            List of ``name:version`` strings.
        """
        with self._lock:
            merged = {plugin for plugins in self._plugins.values() for plugin in plugins}
        return sorted(merged)

    def cleanup(self, plugins: bool = True) -> None:
        """Forget state derived from a Grafana instance that no longer exists.

        Args:
            plugins: If True, also drop the dashboard to plugins mapping.
        """
        with self._lock:
            if plugins:
                self._plugins.clear()

    def snapshot(self) -> dict[str, Any]:
        """Return a copy of the key/value items, mainly for diagnostics."""
        with self._lock:
            return dict(self._values)


__all__ = [
    "CONFIG_GRAFANA_IMAGE",
    "CONFIG_GRAFANA_IMAGE_TAG",
    "CONFIG_JSONNET_BASE_PATH",
    "CONFIG_OPERATOR_NAMESPACE",
    "CONFIG_PLUGINS_INIT_IMAGE",
    "CONFIG_PLUGINS_INIT_TAG",
    "CONFIG_ROUTE_SUPPORTED",
    "ControllerConfig",
]
