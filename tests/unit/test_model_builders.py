"""Tests for the child-object builders."""

from __future__ import annotations

import base64
import copy

import pytest

from grafana_operator.errors import FatalError
from grafana_operator.model import (
    admin_credentials,
    build_admin_secret,
    build_config_map,
    build_deployment,
    build_ingress,
    build_route,
    build_service,
    render_grafana_ini,
)
from grafana_operator.model.deployment import DEFAULT_RESOURCES
from grafana_operator.model.names import (
    GRAFANA_ADMIN_PASSWORD_ENV_VAR,
    GRAFANA_ADMIN_USER_ENV_VAR,
    INSTANCE_LABEL,
    LAST_CONFIG_ANNOTATION,
    merge_annotations,
)
from grafana_operator.models import GrafanaInstance
from tests.helpers import make_grafana


def instance_with(**spec: object) -> GrafanaInstance:
    return GrafanaInstance.from_object(make_grafana(name="main", namespace="ns", spec=dict(spec)))


def decode(value: str) -> str:
    return base64.b64decode(value).decode()


def deployment_for(instance: GrafanaInstance, current: dict | None = None, **overrides: object) -> dict:
    kwargs: dict = {
        "config_hash": "abc",
        "plugins": ["clock:1.0"],
        "grafana_image": "grafana/grafana:7.1.1",
        "plugins_init_image": "init:0.0.3",
    }
    kwargs.update(overrides)
    return build_deployment(instance, current, **kwargs)


class TestGrafanaIni:
    def test_sorted_and_empty_values_skipped(self) -> None:
        instance = instance_with(
            config={
                "server": {"root_url": "http://x", "domain": ""},
                "auth": {"disable_login_form": False},
                "log": {"mode": "console", "level": None},
            }
        )
        text, digest = render_grafana_ini(instance)
        assert text == (
            "[auth]\ndisable_login_form = false\n\n"
            "[log]\nmode = console\n\n"
            "[server]\nroot_url = http://x\n"
        )
        assert len(digest) == 64

    def test_admin_credentials_never_rendered(self) -> None:
        instance = instance_with(
            config={"security": {"admin_user": "root", "admin_password": "pw", "cookie_secure": True}}
        )
        text, _ = render_grafana_ini(instance)
        assert "admin" not in text
        assert "cookie_secure = true" in text

    def test_hash_is_deterministic(self) -> None:
        first = instance_with(config={"a": {"x": 1, "y": 2}})
        second = instance_with(config={"a": {"y": 2, "x": 1}})
        assert render_grafana_ini(first)[1] == render_grafana_ini(second)[1]

    def test_config_map_carries_hash_annotation(self) -> None:
        instance = instance_with(config={"log": {"mode": "console"}})
        config_map = build_config_map(instance)
        _, digest = render_grafana_ini(instance)

        assert config_map["metadata"]["name"] == "grafana-config-main"
        assert config_map["metadata"]["annotations"] == {LAST_CONFIG_ANNOTATION: digest}
        assert config_map["data"]["grafana.ini"].startswith("[log]")


class TestAdminSecret:
    def test_new_secret_gets_default_user_and_generated_password(self) -> None:
        secret = build_admin_secret(instance_with())
        assert secret["type"] == "Opaque"
        assert decode(secret["data"][GRAFANA_ADMIN_USER_ENV_VAR]) == "admin"
        password = decode(secret["data"][GRAFANA_ADMIN_PASSWORD_ENV_VAR])
        assert len(password) == 10
        assert password.isalpha()

    def test_existing_password_is_kept(self) -> None:
        instance = instance_with()
        current = build_admin_secret(instance)
        rebuilt = build_admin_secret(instance, current)
        assert rebuilt["data"] == current["data"]

    def test_declared_values_win(self) -> None:
        instance = instance_with(config={"security": {"admin_user": "root", "admin_password": "pw"}})
        current = build_admin_secret(instance_with())
        rebuilt = build_admin_secret(instance, current)
        assert admin_credentials(rebuilt) == ("root", "pw")

    def test_invalid_base64_is_fatal(self) -> None:
        secret = {"data": {GRAFANA_ADMIN_USER_ENV_VAR: "!!", GRAFANA_ADMIN_PASSWORD_ENV_VAR: "!!"}}
        with pytest.raises(FatalError):
            admin_credentials(secret)


class TestService:
    def test_defaults(self) -> None:
        service = build_service(instance_with())
        assert service["metadata"]["name"] == "grafana-service-main"
        assert service["spec"]["type"] == "ClusterIP"
        assert service["spec"]["ports"] == [
            {"name": "grafana", "port": 3000, "protocol": "TCP", "targetPort": "grafana-http"}
        ]
        assert service["spec"]["selector"][INSTANCE_LABEL] == "main"

    def test_allocated_fields_are_kept(self) -> None:
        instance = instance_with(service={"type": "NodePort"})
        current = build_service(instance)
        current["spec"]["clusterIP"] = "10.0.0.5"
        current["spec"]["ports"][0]["nodePort"] = 31000

        rebuilt = build_service(instance, current)

        assert rebuilt["spec"]["clusterIP"] == "10.0.0.5"
        assert rebuilt["spec"]["ports"][0]["nodePort"] == 31000

    def test_node_port_dropped_for_cluster_ip(self) -> None:
        instance = instance_with()
        current = build_service(instance)
        current["spec"]["ports"][0]["nodePort"] = 31000
        assert "nodePort" not in build_service(instance, current)["spec"]["ports"][0]

    def test_declared_labels_cannot_override_selector_labels(self) -> None:
        service = build_service(instance_with(service={"labels": {INSTANCE_LABEL: "x", "team": "a"}}))
        assert service["metadata"]["labels"][INSTANCE_LABEL] == "main"
        assert service["metadata"]["labels"]["team"] == "a"


class TestIngressAndRoute:
    def test_ingress(self) -> None:
        instance = instance_with(
            ingress={
                "enabled": True,
                "hostname": "grafana.example.com",
                "tlsEnabled": True,
                "tlsSecretName": "tls",
                "ingressClassName": "nginx",
            }
        )
        ingress = build_ingress(instance)
        rule = ingress["spec"]["rules"][0]
        assert rule["host"] == "grafana.example.com"
        backend = rule["http"]["paths"][0]["backend"]["service"]
        assert backend == {"name": "grafana-service-main", "port": {"name": "grafana"}}
        assert ingress["spec"]["tls"] == [{"secretName": "tls", "hosts": ["grafana.example.com"]}]
        assert ingress["spec"]["ingressClassName"] == "nginx"

    def test_route_keeps_assigned_host(self) -> None:
        instance = instance_with(ingress={"enabled": True})
        current = build_route(instance)
        current["spec"]["host"] = "grafana-route-main-ns.apps.example.com"

        route = build_route(instance, current)

        assert route["spec"]["host"] == "grafana-route-main-ns.apps.example.com"
        assert route["spec"]["to"] == {"kind": "Service", "name": "grafana-service-main", "weight": 100}
        assert "tls" not in route["spec"]

    def test_route_tls_edge(self) -> None:
        route = build_route(instance_with(ingress={"enabled": True, "tlsEnabled": True}))
        assert route["spec"]["tls"] == {"termination": "edge"}


class TestDeployment:
    def test_containers(self) -> None:
        deployment = deployment_for(instance_with())
        pod = deployment["spec"]["template"]["spec"]
        grafana = pod["containers"][0]
        init = pod["initContainers"][0]

        assert deployment["metadata"]["name"] == "grafana-deployment-main"
        assert grafana["image"] == "grafana/grafana:7.1.1"
        assert grafana["resources"] == DEFAULT_RESOURCES
        assert {"name": "LAST_CONFIG", "value": "abc"} in grafana["env"]
        assert grafana["readinessProbe"]["httpGet"] == {"path": "/api/health", "port": 3000}
        assert init["image"] == "init:0.0.3"
        assert init["env"] == [{"name": "GRAFANA_PLUGINS", "value": "clock:1.0"}]

    def test_config_hash_change_changes_template(self) -> None:
        instance = instance_with()
        assert deployment_for(instance)["spec"] != deployment_for(instance, config_hash="def")["spec"]

    def test_deterministic(self) -> None:
        instance = instance_with(secrets=["extra"], configMaps=["dashboards"])
        assert deployment_for(instance) == deployment_for(instance)

    def test_extra_volumes_mounted(self) -> None:
        instance = instance_with(
            secrets=["extra"],
            configMaps=["dashboards"],
            containers=[{"name": "sidecar", "image": "busybox"}],
        )
        pod = deployment_for(instance)["spec"]["template"]["spec"]
        volume_names = [v["name"] for v in pod["volumes"]]
        assert "secret-extra" in volume_names
        assert "configmap-dashboards" in volume_names
        sidecar = pod["containers"][1]
        assert [m["mountPath"] for m in sidecar["volumeMounts"]] == [
            "/etc/grafana-secrets/extra",
            "/etc/grafana-configmaps/dashboards",
        ]

    def test_existing_pod_annotations_kept_declared_win(self) -> None:
        instance = instance_with(deployment={"annotations": {"team": "ops"}})
        current = deployment_for(instance)
        annotations = current["spec"]["template"]["metadata"]["annotations"]
        annotations["kubectl.kubernetes.io/restartedAt"] = "now"
        annotations["team"] = "dev"

        rebuilt = deployment_for(instance, copy.deepcopy(current))

        rebuilt_annotations = rebuilt["spec"]["template"]["metadata"]["annotations"]
        assert rebuilt_annotations["kubectl.kubernetes.io/restartedAt"] == "now"
        assert rebuilt_annotations["team"] == "ops"

    def test_scheduling_fields_only_when_declared(self) -> None:
        pod = deployment_for(instance_with())["spec"]["template"]["spec"]
        assert "nodeSelector" not in pod
        assert "tolerations" not in pod

        declared = instance_with(deployment={"nodeSelector": {"disk": "ssd"}, "replicas": 2})
        deployment = deployment_for(declared)
        assert deployment["spec"]["replicas"] == 2
        assert deployment["spec"]["template"]["spec"]["nodeSelector"] == {"disk": "ssd"}


def test_merge_annotations_requested_wins() -> None:
    assert merge_annotations({"a": "1"}, {"a": "0", "b": "2"}) == {"a": "1", "b": "2"}
    assert merge_annotations(None, None) == {}
