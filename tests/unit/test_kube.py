"""Tests for the Kubernetes-backed cluster client and event recorder."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client import ApiException
from kubernetes.dynamic.exceptions import ResourceNotFoundError

from grafana_operator.cluster import CONFIG_MAP, GRAFANA, ROUTE
from grafana_operator.errors import ClusterConflictError, ClusterNotFoundError
from grafana_operator.kube import KubernetesClusterClient, KubernetesEventRecorder
from grafana_operator.types import EventType


def result(data: dict) -> MagicMock:
    found = MagicMock()
    found.to_dict.return_value = data
    return found


@pytest.fixture
def dynamic() -> Iterator[MagicMock]:
    with patch("grafana_operator.kube.DynamicClient") as dynamic_cls:
        yield dynamic_cls.return_value


@pytest.fixture
def custom() -> Iterator[MagicMock]:
    with patch("grafana_operator.kube.client.CustomObjectsApi") as custom_cls:
        yield custom_cls.return_value


@pytest.fixture
def kube(dynamic: MagicMock, custom: MagicMock) -> KubernetesClusterClient:
    return KubernetesClusterClient(MagicMock())


class TestKubernetesClusterClient:
    def test_get(self, kube: KubernetesClusterClient, dynamic: MagicMock) -> None:
        resource = dynamic.resources.get.return_value
        resource.get.return_value = result({"metadata": {"name": "grafana"}})

        assert kube.get(GRAFANA, "monitoring", "grafana") == {"metadata": {"name": "grafana"}}
        dynamic.resources.get.assert_called_once_with(api_version="monitor.kun/v1alpha1", kind="Grafana")
        resource.get.assert_called_once_with(name="grafana", namespace="monitoring")

    def test_resources_are_cached(self, kube: KubernetesClusterClient, dynamic: MagicMock) -> None:
        dynamic.resources.get.return_value.get.return_value = result({})
        kube.get(GRAFANA, "monitoring", "a")
        kube.get(GRAFANA, "monitoring", "b")
        assert dynamic.resources.get.call_count == 1

    @pytest.mark.parametrize(
        ("status", "error_cls"), [(404, ClusterNotFoundError), (409, ClusterConflictError)]
    )
    def test_errors_translated(
        self,
        kube: KubernetesClusterClient,
        dynamic: MagicMock,
        status: int,
        error_cls: type[Exception],
    ) -> None:
        dynamic.resources.get.return_value.get.side_effect = ApiException(status=status, reason="nope")
        with pytest.raises(error_cls, match="ConfigMap monitoring/grafana-config"):
            kube.get(CONFIG_MAP, "monitoring", "grafana-config")

    def test_other_errors_propagate(self, kube: KubernetesClusterClient, dynamic: MagicMock) -> None:
        dynamic.resources.get.return_value.replace.side_effect = ApiException(status=500)
        with pytest.raises(ApiException):
            kube.update(CONFIG_MAP, {"metadata": {"name": "x", "namespace": "monitoring"}})

    def test_list_fills_in_kind(self, kube: KubernetesClusterClient, dynamic: MagicMock) -> None:
        resource = dynamic.resources.get.return_value
        resource.get.return_value = result({"items": [{"metadata": {"name": "a"}}]})

        items = kube.list(GRAFANA, "monitoring")

        assert items == [
            {"metadata": {"name": "a"}, "apiVersion": "monitor.kun/v1alpha1", "kind": "Grafana"}
        ]
        resource.get.assert_called_once_with(namespace="monitoring")

    def test_list_all_namespaces(self, kube: KubernetesClusterClient, dynamic: MagicMock) -> None:
        resource = dynamic.resources.get.return_value
        resource.get.return_value = result({"items": None})

        assert kube.list(GRAFANA) == []
        resource.get.assert_called_once_with()

    def test_create(self, kube: KubernetesClusterClient, dynamic: MagicMock) -> None:
        resource = dynamic.resources.get.return_value
        resource.create.return_value = result({"metadata": {"name": "x", "uid": "1"}})
        body = {"metadata": {"name": "x", "namespace": "monitoring"}}

        assert kube.create(CONFIG_MAP, body)["metadata"]["uid"] == "1"
        resource.create.assert_called_once_with(body=body, namespace="monitoring")

    def test_update_status(self, kube: KubernetesClusterClient, custom: MagicMock) -> None:
        body = {"metadata": {"name": "grafana", "namespace": "monitoring"}, "status": {}}
        custom.replace_namespaced_custom_object_status.return_value = body

        assert kube.update_status(GRAFANA, body) == body
        custom.replace_namespaced_custom_object_status.assert_called_once_with(
            "monitor.kun", "v1alpha1", "monitoring", "grafanas", "grafana", body
        )

    def test_delete_missing(self, kube: KubernetesClusterClient, dynamic: MagicMock) -> None:
        dynamic.resources.get.return_value.delete.side_effect = ApiException(status=404)
        with pytest.raises(ClusterNotFoundError):
            kube.delete(CONFIG_MAP, "monitoring", "gone")

    def test_watch_yields_raw_objects(self, kube: KubernetesClusterClient, dynamic: MagicMock) -> None:
        dynamic.watch.return_value = iter(
            [
                {"type": "ADDED", "raw_object": {"metadata": {"name": "a"}}},
                {"type": "ERROR", "raw_object": None},
                {"type": "DELETED", "raw_object": {"metadata": {"name": "b"}}},
            ]
        )

        with patch("grafana_operator.kube.watch.Watch"):
            events = list(kube.watch(GRAFANA, "monitoring", threading.Event(), 30))

        assert [(event.type, event.object["metadata"]["name"]) for event in events] == [
            ("ADDED", "a"),
            ("DELETED", "b"),
        ]
        assert dynamic.watch.call_args.kwargs["namespace"] == "monitoring"
        assert dynamic.watch.call_args.kwargs["timeout"] == 30

    def test_supports(self, kube: KubernetesClusterClient, dynamic: MagicMock) -> None:
        dynamic.resources.get.side_effect = ResourceNotFoundError("no route api")
        assert kube.supports(ROUTE) is False


class TestKubernetesEventRecorder:
    def test_event_body(self) -> None:
        with patch("grafana_operator.kube.client.CoreV1Api") as core_cls:
            recorder = KubernetesEventRecorder(MagicMock())
            recorder.event(
                {
                    "apiVersion": "monitor.kun/v1alpha1",
                    "kind": "GrafanaDashboard",
                    "metadata": {"name": "overview", "namespace": "monitoring", "uid": "u1"},
                },
                EventType.NORMAL,
                "Success",
                "dashboard monitoring/overview successfully submitted",
            )

        namespace, body = core_cls.return_value.create_namespaced_event.call_args.args
        assert namespace == "monitoring"
        assert body["involvedObject"]["kind"] == "GrafanaDashboard"
        assert body["involvedObject"]["uid"] == "u1"
        assert body["type"] == "Normal"
        assert body["reason"] == "Success"
        assert body["source"] == {"component": "grafana-operator"}
        assert body["metadata"]["name"].startswith("overview.")

    def test_delivery_failure_is_logged(self) -> None:
        with patch("grafana_operator.kube.client.CoreV1Api") as core_cls:
            core_cls.return_value.create_namespaced_event.side_effect = ApiException(status=403)
            recorder = KubernetesEventRecorder(MagicMock())
            recorder.event({"metadata": {"name": "x"}}, EventType.WARNING, "ProcessingError", "boom")

        assert core_cls.return_value.create_namespaced_event.call_args.args[0] == "default"
