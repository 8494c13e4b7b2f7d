"""Typed views over the operator's custom resources.

Objects travel through the cluster client as plain Kubernetes dicts. The
dataclasses here parse the parts the controllers care about and keep the
original dict in ``raw`` so that finalizer and status writes can send the
object back unchanged apart from the field being written.
"""

from __future__ import annotations

import copy
import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Self

from grafana_operator.errors import ValidationError

API_GROUP = "monitor.kun"
API_VERSION = f"{API_GROUP}/v1alpha1"

KIND_GRAFANA = "Grafana"
KIND_DASHBOARD = "GrafanaDashboard"
KIND_DATASOURCE = "GrafanaDataSource"

DASHBOARD_FINALIZER = "finalizer.grafanadashboards.monitor.kun"
DATASOURCE_FINALIZER = "finalizer.grafanadatasources.monitor.kun"

DEFAULT_HTTP_PORT = 3000


@dataclass
class ObjectMeta:
    """The subset of ``metadata`` the controllers read."""

    name: str
    namespace: str = ""
    uid: str = ""
    resource_version: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    finalizers: list[str] = field(default_factory=list)
    deletion_timestamp: str | None = None

    @classmethod
    def from_dict(cls, metadata: dict[str, Any]) -> Self:
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace") or "",
            uid=metadata.get("uid") or "",
            resource_version=metadata.get("resourceVersion") or "",
            labels=dict(metadata.get("labels") or {}),
            annotations=dict(metadata.get("annotations") or {}),
            finalizers=list(metadata.get("finalizers") or []),
            deletion_timestamp=metadata.get("deletionTimestamp"),
        )

    @property
    def being_deleted(self) -> bool:
        return self.deletion_timestamp is not None


@dataclass
class IngressSettings:
    """``spec.ingress`` of a Grafana instance."""

    enabled: bool = False
    hostname: str = ""
    path: str = "/"
    tls_enabled: bool = False
    tls_secret_name: str = ""
    ingress_class_name: str = ""
    annotations: dict[str, str] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            enabled=bool(data.get("enabled", False)),
            hostname=data.get("hostname") or "",
            path=data.get("path") or "/",
            tls_enabled=bool(data.get("tlsEnabled", False)),
            tls_secret_name=data.get("tlsSecretName") or "",
            ingress_class_name=data.get("ingressClassName") or "",
            annotations=dict(data.get("annotations") or {}),
            labels=dict(data.get("labels") or {}),
        )


@dataclass
class ServiceSettings:
    """``spec.service`` of a Grafana instance."""

    type: str = "ClusterIP"
    port: int | None = None
    annotations: dict[str, str] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        port = data.get("port")
        return cls(
            type=data.get("type") or "ClusterIP",
            port=int(port) if port else None,
            annotations=dict(data.get("annotations") or {}),
            labels=dict(data.get("labels") or {}),
        )


@dataclass
class DeploymentSettings:
    """``spec.deployment`` of a Grafana instance."""

    replicas: int = 1
    annotations: dict[str, str] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    node_selector: dict[str, str] = field(default_factory=dict)
    tolerations: list[dict[str, Any]] = field(default_factory=list)
    affinity: dict[str, Any] = field(default_factory=dict)
    security_context: dict[str, Any] = field(default_factory=dict)
    container_security_context: dict[str, Any] = field(default_factory=dict)
    termination_grace_period_seconds: int = 30

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        replicas = int(data.get("replicas") or 0)
        grace = int(data.get("terminationGracePeriodSeconds") or 0)
        return cls(
            replicas=replicas if replicas > 0 else 1,
            annotations=dict(data.get("annotations") or {}),
            labels=dict(data.get("labels") or {}),
            node_selector=dict(data.get("nodeSelector") or {}),
            tolerations=list(data.get("tolerations") or []),
            affinity=dict(data.get("affinity") or {}),
            security_context=dict(data.get("securityContext") or {}),
            container_security_context=dict(data.get("containerSecurityContext") or {}),
            termination_grace_period_seconds=grace if grace else 30,
        )


@dataclass
class GrafanaInstance:
    """A Grafana custom resource: one deployed dashboard platform instance.

    Attributes:
        meta: Object metadata.
        config: ``grafana.ini`` sections, each a mapping of key to value.
        dashboard_label_selectors: Selectors a dashboard's labels must match.
        datasource_label_selectors: Selectors a data source's labels must match.
        dashboard_namespace_selector: Optional selector on namespace labels that
            lets resources in other namespaces target this instance.
        ingress: Ingress settings; None when not declared.
        service: Service settings.
        deployment: Deployment settings.
        prefer_service: Address Grafana through its service even when an
            ingress or route exists.
        client_timeout: Per-request timeout for the Grafana API, in seconds.
        resources: Resource requirements override for the Grafana container.
        init_resources: Resource requirements override for the plugins init container.
        secrets: Names of extra secrets mounted into the pod.
        config_maps: Names of extra config maps mounted into the pod.
        containers: Extra sidecar containers.
        raw: The object as read from the cluster.
    """

    meta: ObjectMeta
    config: dict[str, Any] = field(default_factory=dict)
    dashboard_label_selectors: list[dict[str, Any] | None] = field(default_factory=list)
    datasource_label_selectors: list[dict[str, Any] | None] = field(default_factory=list)
    dashboard_namespace_selector: dict[str, Any] | None = None
    ingress: IngressSettings | None = None
    service: ServiceSettings = field(default_factory=ServiceSettings)
    deployment: DeploymentSettings = field(default_factory=DeploymentSettings)
    prefer_service: bool = False
    client_timeout: float | None = None
    resources: dict[str, Any] | None = None
    init_resources: dict[str, Any] | None = None
    secrets: list[str] = field(default_factory=list)
    config_maps: list[str] = field(default_factory=list)
    containers: list[dict[str, Any]] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> Self:
        spec = obj.get("spec") or {}
        ingress = spec.get("ingress")
        client = spec.get("client") or {}
        return cls(
            meta=ObjectMeta.from_dict(obj.get("metadata") or {}),
            config=copy.deepcopy(spec.get("config") or {}),
            dashboard_label_selectors=list(spec.get("dashboardLabelSelector") or []),
            datasource_label_selectors=list(spec.get("datasourceLabelSelector") or []),
            dashboard_namespace_selector=spec.get("dashboardNamespaceSelector"),
            ingress=IngressSettings.from_dict(ingress) if ingress is not None else None,
            service=ServiceSettings.from_dict(spec.get("service") or {}),
            deployment=DeploymentSettings.from_dict(spec.get("deployment") or {}),
            prefer_service=bool(client.get("preferService", False)),
            client_timeout=float(client["timeout"]) if client.get("timeout") else None,
            resources=spec.get("resources"),
            init_resources=spec.get("initResources"),
            secrets=list(spec.get("secrets") or []),
            config_maps=list(spec.get("configMaps") or []),
            containers=copy.deepcopy(spec.get("containers") or []),
            raw=obj,
        )

    @property
    def http_port(self) -> int:
        """Port Grafana listens on: ``server.http_port`` or 3000."""
        server = self.config.get("server") or {}
        value = server.get("http_port")
        try:
            return int(value) if value else DEFAULT_HTTP_PORT
        except (TypeError, ValueError):
            return DEFAULT_HTTP_PORT

    @property
    def ingress_enabled(self) -> bool:
        return self.ingress is not None and self.ingress.enabled

    def _security(self, key: str) -> str:
        security = self.config.get("security") or {}
        value = security.get(key)
        return str(value) if value else ""

    @property
    def admin_user(self) -> str:
        """Declared admin user, or empty when not declared."""
        return self._security("admin_user")

    @property
    def admin_password(self) -> str:
        """Declared admin password, or empty when not declared."""
        return self._security("admin_password")


@dataclass(frozen=True)
class DashboardInput:
    """A ``${inputName}`` placeholder resolved to a data-source name."""

    input_name: str
    datasource_name: str


@dataclass(frozen=True)
class ConfigMapRef:
    name: str
    key: str


@dataclass(frozen=True)
class Plugin:
    name: str
    version: str = ""

    def spec_string(self) -> str:
        return f"{self.name}:{self.version}" if self.version else self.name


@dataclass
class GrafanaDashboard:
    """A GrafanaDashboard custom resource.

    Exactly one content source is expected, tried in the order url,
    config map, inline json, inline jsonnet.
    """

    meta: ObjectMeta
    json: str = ""
    jsonnet: str = ""
    url: str = ""
    config_map_ref: ConfigMapRef | None = None
    inputs: list[DashboardInput] = field(default_factory=list)
    plugins: list[Plugin] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> Self:
        spec = obj.get("spec") or {}
        ref = spec.get("configMapRef")
        return cls(
            meta=ObjectMeta.from_dict(obj.get("metadata") or {}),
            json=spec.get("json") or "",
            jsonnet=spec.get("jsonnet") or "",
            url=spec.get("url") or "",
            config_map_ref=ConfigMapRef(ref.get("name", ""), ref.get("key", "")) if ref else None,
            inputs=[
                DashboardInput(item.get("inputName", ""), item.get("datasourceName", ""))
                for item in spec.get("datasources") or []
            ],
            plugins=[
                Plugin(item.get("name", ""), str(item.get("version") or ""))
                for item in spec.get("plugins") or []
            ],
            raw=obj,
        )

    def hash(self) -> str:
        """Digest over the fields that identify the dashboard's content.

        Labels and input rules are not part of the digest.
        """
        digest = hashlib.sha256()
        digest.update(self.json.encode())
        digest.update(self.url.encode())
        digest.update(self.jsonnet.encode())
        digest.update(self.meta.namespace.encode())
        if self.config_map_ref is not None:
            digest.update(self.config_map_ref.name.encode())
            digest.update(self.config_map_ref.key.encode())
        return digest.hexdigest()

    def parse(self, content: str | None = None) -> dict[str, Any]:
        """Parse content (or the inline json) as a JSON object.

        Raises:
            ValidationError: If the text is not a JSON object.
        """
        text = content if content else self.json
        try:
            parsed = json.loads(text)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"invalid dashboard json: {e}") from e
        if not isinstance(parsed, dict):
            raise ValidationError("dashboard json must be an object")
        return parsed

    def _declared(self, key: str, board: dict[str, Any] | None) -> str:
        if board is None:
            try:
                board = self.parse()
            except ValidationError:
                return ""
        value = board.get(key)
        return value if isinstance(value, str) else ""

    def uid(self, board: dict[str, Any] | None = None) -> str:
        """Remote UID of the dashboard.

        Args:
            board: Resolved dashboard content. When omitted, the inline json
                is consulted.

        Returns:
            The declared ``uid`` when non-empty, otherwise the sha1 hex digest
            of namespace followed by name (40 characters, Grafana's limit).
        """
        declared = self._declared("uid", board)
        if declared:
            return declared
        return hashlib.sha1((self.meta.namespace + self.meta.name).encode()).hexdigest()

    def declared_title(self) -> str:
        """Title declared in the inline json, empty when there is none."""
        return self._declared("title", None)

    def dashboard_name(self, board: dict[str, Any] | None = None) -> str:
        """Title used to search for the dashboard remotely.

        Content from a URL, config map or jsonnet only reveals its title once
        resolved; pass it as ``board``. Falls back to the resource name.
        """
        return self._declared("title", board) or self.meta.name


@dataclass
class GrafanaDataSource:
    """A GrafanaDataSource custom resource.

    ``definition`` is the declared data source, passed through verbatim to
    Grafana.
    """

    meta: ObjectMeta
    definition: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> Self:
        spec = obj.get("spec") or {}
        return cls(
            meta=ObjectMeta.from_dict(obj.get("metadata") or {}),
            definition=copy.deepcopy(spec.get("datasources") or {}),
            raw=obj,
        )

    @property
    def name(self) -> str:
        value = self.definition.get("name")
        return value if isinstance(value, str) else ""

    def hash(self) -> str:
        digest = hashlib.sha256()
        digest.update(json.dumps(self.definition, sort_keys=True).encode())
        digest.update(self.meta.namespace.encode())
        return digest.hexdigest()


def validate_dashboard_update(new: GrafanaDashboard, old: GrafanaDashboard) -> None:
    """Reject a dashboard update that changes its content hash.

    Raises:
        ValidationError: If the hash differs.
    """
    if new.hash() != old.hash():
        raise ValidationError("GrafanaDashboard spec changes are not allowed")


def validate_datasource_update(new: GrafanaDataSource, old: GrafanaDataSource) -> None:
    """Reject a data-source update that changes its content hash.

    Raises:
        ValidationError: If the hash differs.
    """
    if new.hash() != old.hash():
        raise ValidationError("GrafanaDataSource spec changes are not allowed")


__all__ = [
    "API_GROUP",
    "API_VERSION",
    "ConfigMapRef",
    "DASHBOARD_FINALIZER",
    "DATASOURCE_FINALIZER",
    "DashboardInput",
    "GrafanaDashboard",
    "GrafanaDataSource",
    "GrafanaInstance",
    "ObjectMeta",
    "Plugin",
    "validate_dashboard_update",
    "validate_datasource_update",
]
