"""Dependency Injection container for the operator.

The container wires the orchestrator-facing clients and the shared
configuration cache. Production code gets Kubernetes-backed providers from
:func:`create_container`; tests override single providers with fakes.

Usage:
    # Production setup
    container = create_container(config)
    cluster = container.cluster()

    # Test setup with fakes
    container = create_container(config, api_client=object())
    container.cluster.override(providers.Object(FakeClusterClient()))
    controller_config = container.controller_config()
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from dependency_injector import containers, providers

from grafana_operator.config import Config

if TYPE_CHECKING:
    from kubernetes import client

    from grafana_operator.cluster import ClusterClient, EventRecorder
    from grafana_operator.controller_config import ControllerConfig


class OperatorContainer(containers.DeclarativeContainer):
    """Main dependency injection container.

    Every provider is a ``Dependency`` so that a container used without
    :func:`create_container` fails loudly instead of reaching a real cluster.
    """

    config: providers.Dependency[Config] = providers.Dependency(instance_of=Config)
    api_client: providers.Dependency[client.ApiClient] = providers.Dependency()
    cluster: providers.Dependency[ClusterClient] = providers.Dependency()
    recorder: providers.Dependency[EventRecorder] = providers.Dependency()
    controller_config: providers.Dependency[ControllerConfig] = providers.Dependency()


def create_cluster_client(api_client: client.ApiClient) -> ClusterClient:
    from grafana_operator.kube import KubernetesClusterClient

    return KubernetesClusterClient(api_client)


def create_event_recorder(api_client: client.ApiClient) -> EventRecorder:
    from grafana_operator.kube import KubernetesEventRecorder

    return KubernetesEventRecorder(api_client)


def create_controller_config(config: Config, cluster: ClusterClient) -> ControllerConfig:
    """Create the shared cache seeded from configuration and API discovery."""
    from grafana_operator.bootstrap import seed_controller_config

    return seed_controller_config(config, cluster)


def create_container(config: Config, api_client: Any = None) -> OperatorContainer:
    """Create and configure the main DI container.

    Args:
        config: Operator configuration.
        api_client: Kubernetes API client. When omitted, one is loaded lazily
            from in-cluster config or kubeconfig on first use.

    Returns:
        OperatorContainer with Kubernetes-backed singletons.
    """
    from grafana_operator.kube import load_api_client

    container = OperatorContainer()
    container.config.override(providers.Object(config))

    if api_client is None:
        container.api_client.override(providers.Singleton(load_api_client))
    else:
        container.api_client.override(providers.Object(api_client))

    container.cluster.override(providers.Singleton(create_cluster_client, container.api_client))
    container.recorder.override(providers.Singleton(create_event_recorder, container.api_client))
    container.controller_config.override(
        providers.Singleton(create_controller_config, container.config, container.cluster)
    )
    return container


__all__ = [
    "OperatorContainer",
    "create_container",
]
