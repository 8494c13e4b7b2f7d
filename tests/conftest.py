"""Shared pytest fixtures for grafana operator tests.

Fakes are also available for direct instantiation from :mod:`tests.mocks`;
the fixtures below wire the common combinations.
"""

from __future__ import annotations

import logging
import threading

import pytest

from grafana_operator.controller_config import ControllerConfig
from grafana_operator.controllers.common import InstanceClients
from grafana_operator.engine import ReconcileContext
from tests.mocks import (
    FakeClusterClient,
    FakeGrafanaClient,
    GrafanaClientFactoryStub,
    RecordingEventRecorder,
)


@pytest.fixture
def cluster() -> FakeClusterClient:
    return FakeClusterClient()


@pytest.fixture
def recorder() -> RecordingEventRecorder:
    return RecordingEventRecorder()


@pytest.fixture
def controller_config() -> ControllerConfig:
    return ControllerConfig()


@pytest.fixture
def grafana() -> FakeGrafanaClient:
    return FakeGrafanaClient()


@pytest.fixture
def client_factory(grafana: FakeGrafanaClient) -> GrafanaClientFactoryStub:
    return GrafanaClientFactoryStub(grafana)


@pytest.fixture
def clients(
    cluster: FakeClusterClient,
    controller_config: ControllerConfig,
    client_factory: GrafanaClientFactoryStub,
) -> InstanceClients:
    return InstanceClients(cluster, controller_config, factory=client_factory)


@pytest.fixture
def ctx() -> ReconcileContext:
    return ReconcileContext(cancel_event=threading.Event())


@pytest.fixture(autouse=True)
def _reset_root_logging():
    """Restore root logger handlers and level changed by setup_logging."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
