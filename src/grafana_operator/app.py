"""Core application runner for the operator.

This module coordinates:
- Health probe server lifecycle
- Continuous watch-and-reconcile mode
- Single-pass (``--once``) mode

Probe-less Operation Mode:
    The health server is optional. If it fails to start (port in use,
    missing dependency) the operator logs a warning and keeps reconciling;
    the orchestrator's probes will then report the pod as unhealthy, which
    is the visible signal.
"""

from __future__ import annotations

import argparse

from grafana_operator.bootstrap import BootstrapContext, bootstrap
from grafana_operator.cli import parse_args
from grafana_operator.health_server import HealthServer
from grafana_operator.logging import get_logger
from grafana_operator.manager import Operator
from grafana_operator.shutdown import ShutdownHandler, create_shutdown_handler

logger = get_logger(__name__)


def start_health_server(context: BootstrapContext, operator: Operator) -> HealthServer | None:
    """Start the health probe server if enabled.

    Returns:
        The running server, or None when disabled or when startup failed.
    """
    config = context.config
    if not config.health_enabled:
        logger.info("Health server is disabled via configuration")
        return None

    try:
        from grafana_operator.health import HealthChecker, create_app

        logger.info("Starting health server on %s:%s", config.health_host, config.health_port)
        server = HealthServer(host=config.health_host, port=config.health_port)
        server.start(create_app(HealthChecker(operator)))
        return server
    except ImportError as e:
        logger.warning(
            "Health server startup failed: dependencies not available. Error: %s",
            e,
            extra={"host": config.health_host, "port": config.health_port},
        )
        return None
    except (OSError, RuntimeError) as e:
        logger.warning(
            "Health server startup failed: %s",
            e,
            extra={"host": config.health_host, "port": config.health_port},
        )
        return None


def run_once_mode(operator: Operator) -> int:
    """Reconcile every existing object once.

    Returns:
        Exit code: 0 when every queue drained, 1 otherwise.
    """
    logger.info("Running a single reconcile pass (--once mode)")
    return 0 if operator.run_once() else 1


def run_continuous_mode(operator: Operator) -> int:
    operator.run()
    return 0


def run_application(
    parsed: argparse.Namespace,
    context: BootstrapContext,
    shutdown: ShutdownHandler | None = None,
) -> int:
    """Build the operator and run it in the requested mode.

    Args:
        parsed: Parsed command-line arguments.
        context: Bootstrap context with all dependencies.
        shutdown: Shutdown handler; one with signal handlers installed is
            created when omitted.

    Returns:
        Exit code for the application.
    """
    shutdown = shutdown or create_shutdown_handler()
    operator = Operator(
        context.cluster,
        context.recorder,
        context.controller_config,
        config=context.config,
        shutdown=shutdown,
    )

    if parsed.once:
        return run_once_mode(operator)

    health_server = start_health_server(context, operator)
    try:
        return run_continuous_mode(operator)
    finally:
        if health_server is not None:
            health_server.shutdown()


def main(args: list[str] | None = None) -> int:
    """Main entry point for the application.

    Args:
        args: Optional list of command-line arguments.

    Returns:
        Exit code for the application.
    """
    parsed = parse_args(args)

    context = bootstrap(parsed)
    if context is None:
        return 1

    return run_application(parsed, context)


__all__ = [
    "main",
    "run_application",
    "run_continuous_mode",
    "run_once_mode",
    "start_health_server",
]
