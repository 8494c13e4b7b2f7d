"""Bootstrap and dependency wiring for the operator.

This module is the composition root. It:
- Loads configuration with CLI overrides
- Sets up logging
- Connects to the Kubernetes API and builds the DI container
- Seeds the shared configuration cache (images, jsonnet location, route support)

Nothing below this layer reads the environment or global state.
"""

from __future__ import annotations

import argparse
from dataclasses import replace
from typing import Any

from kubernetes.config import ConfigException

from grafana_operator.cluster import ROUTE, ClusterClient, EventRecorder
from grafana_operator.config import Config, load_config
from grafana_operator.controller_config import (
    CONFIG_GRAFANA_IMAGE,
    CONFIG_GRAFANA_IMAGE_TAG,
    CONFIG_JSONNET_BASE_PATH,
    CONFIG_OPERATOR_NAMESPACE,
    CONFIG_PLUGINS_INIT_IMAGE,
    CONFIG_PLUGINS_INIT_TAG,
    CONFIG_ROUTE_SUPPORTED,
    ControllerConfig,
)
from grafana_operator.container import create_container
from grafana_operator.kube import load_api_client
from grafana_operator.logging import get_logger, setup_logging

logger = get_logger(__name__)


class BootstrapContext:
    """Container for the bootstrapped dependencies.

    Holds everything needed to build an :class:`~grafana_operator.manager.Operator`.
    """

    def __init__(
        self,
        config: Config,
        cluster: ClusterClient,
        recorder: EventRecorder,
        controller_config: ControllerConfig,
    ) -> None:
        self.config = config
        self.cluster = cluster
        self.recorder = recorder
        self.controller_config = controller_config


def apply_cli_overrides(config: Config, parsed: argparse.Namespace) -> Config:
    """Apply CLI argument overrides to the configuration.

    Args:
        config: Base configuration loaded from environment.
        parsed: Parsed command-line arguments.

    Returns:
        New Config instance with CLI overrides applied.
    """
    overrides: dict[str, Any] = {}

    if parsed.namespace is not None:
        overrides["watch_namespace"] = parsed.namespace.strip()
    if parsed.log_level:
        overrides["log_level"] = parsed.log_level
    if parsed.grafana_image:
        overrides["grafana_image"] = parsed.grafana_image
    if parsed.grafana_image_tag:
        overrides["grafana_image_tag"] = parsed.grafana_image_tag
    if parsed.plugins_init_image:
        overrides["plugins_init_image"] = parsed.plugins_init_image
    if parsed.plugins_init_tag:
        overrides["plugins_init_tag"] = parsed.plugins_init_tag
    if parsed.jsonnet_location:
        overrides["jsonnet_location"] = parsed.jsonnet_location

    if overrides:
        return replace(config, **overrides)
    return config


def seed_controller_config(
    config: Config, cluster: ClusterClient, controller_config: ControllerConfig | None = None
) -> ControllerConfig:
    """Populate the shared cache from configuration and API discovery."""
    controller_config = controller_config or ControllerConfig()
    controller_config.add_config_item(CONFIG_GRAFANA_IMAGE, config.grafana_image)
    controller_config.add_config_item(CONFIG_GRAFANA_IMAGE_TAG, config.grafana_image_tag)
    controller_config.add_config_item(CONFIG_PLUGINS_INIT_IMAGE, config.plugins_init_image)
    controller_config.add_config_item(CONFIG_PLUGINS_INIT_TAG, config.plugins_init_tag)
    controller_config.add_config_item(CONFIG_JSONNET_BASE_PATH, config.jsonnet_location)
    controller_config.add_config_item(CONFIG_OPERATOR_NAMESPACE, config.watch_namespace)

    route_supported = cluster.supports(ROUTE)
    controller_config.add_config_item(CONFIG_ROUTE_SUPPORTED, route_supported)
    if route_supported:
        logger.info("Route API detected, exposing Grafana through routes instead of ingresses")
    return controller_config


def bootstrap(parsed: argparse.Namespace) -> BootstrapContext | None:
    """Bootstrap the operator with all dependencies.

    Args:
        parsed: Parsed command-line arguments.

    Returns:
        BootstrapContext, or None if the Kubernetes API is unreachable.
    """
    config = load_config(parsed.env_file)
    config = apply_cli_overrides(config, parsed)

    setup_logging(config.log_level, json_format=config.log_json, diagnostic_tags=config.diagnostic_tags)

    try:
        api_client = load_api_client()
    except ConfigException as e:
        logger.error("Failed to load Kubernetes configuration: %s", e)
        return None

    container = create_container(config, api_client)
    cluster = container.cluster()
    recorder = container.recorder()
    controller_config = container.controller_config()

    logger.info(
        "Using Grafana image %s:%s and plugins init image %s:%s",
        config.grafana_image,
        config.grafana_image_tag,
        config.plugins_init_image,
        config.plugins_init_tag,
    )

    return BootstrapContext(
        config=config,
        cluster=cluster,
        recorder=recorder,
        controller_config=controller_config,
    )


__all__ = [
    "BootstrapContext",
    "apply_cli_overrides",
    "bootstrap",
    "seed_controller_config",
]
