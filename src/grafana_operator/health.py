"""Liveness and readiness probes for the operator process.

- Liveness (``/healthz``): the process is running and serving requests.
- Readiness (``/readyz``): every controller has started its workers and the
  operator is not shutting down.

Usage:
    from grafana_operator.health import HealthChecker, create_app

    checker = HealthChecker(operator)
    app = create_app(checker)
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from grafana_operator.logging import get_logger

logger = get_logger(__name__)


class HealthStatus(Enum):
    """Health status values for component checks."""

    UP = "up"
    DOWN = "down"


@dataclass
class HealthCheckResult:
    """Result of a health check operation.

    Attributes:
        status: Overall health status ("healthy" or "unhealthy").
        checks: Per-component status.
        timestamp: Unix timestamp of the health check.
    """

    status: str
    checks: dict[str, HealthStatus] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    @property
    def healthy(self) -> bool:
        return self.status == "healthy"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "checks": {name: check.value for name, check in self.checks.items()},
        }


class OperatorStateProvider(Protocol):
    """What the health checker needs to know about the running operator."""

    @property
    def shutting_down(self) -> bool: ...

    def controller_states(self) -> Mapping[str, bool]:
        """Controller name to whether its workers are running."""
        ...


class HealthChecker:
    """Computes probe results from the operator state.

    Args:
        provider: The running operator.
    """

    def __init__(self, provider: OperatorStateProvider) -> None:
        self.provider = provider

    def check_liveness(self) -> HealthCheckResult:
        return HealthCheckResult(status="healthy")

    def check_readiness(self) -> HealthCheckResult:
        checks = {
            name: HealthStatus.UP if running else HealthStatus.DOWN
            for name, running in self.provider.controller_states().items()
        }
        ready = (
            bool(checks)
            and not self.provider.shutting_down
            and all(check is HealthStatus.UP for check in checks.values())
        )
        return HealthCheckResult(status="healthy" if ready else "unhealthy", checks=checks)


def create_app(health_checker: HealthChecker) -> FastAPI:
    """Create the probe application.

    Unhealthy results are answered with 503 so that the kubelet acts on them.
    """
    app = FastAPI(title="grafana-operator", docs_url=None, redoc_url=None, openapi_url=None)

    def respond(result: HealthCheckResult) -> JSONResponse:
        return JSONResponse(result.to_dict(), status_code=200 if result.healthy else 503)

    @app.get("/healthz")
    async def healthz() -> JSONResponse:
        return respond(health_checker.check_liveness())

    @app.get("/readyz")
    async def readyz() -> JSONResponse:
        result = health_checker.check_readiness()
        if not result.healthy:
            logger.debug("Readiness check failed: %s", result.to_dict())
        return respond(result)

    return app


__all__ = [
    "HealthCheckResult",
    "HealthChecker",
    "HealthStatus",
    "OperatorStateProvider",
    "create_app",
]
