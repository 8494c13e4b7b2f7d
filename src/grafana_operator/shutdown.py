"""Graceful shutdown handling for the operator.

SIGINT and SIGTERM stop the watchers, cancel in-flight reconciles and drain
the worker pools.
"""

from __future__ import annotations

import signal
import threading
from collections.abc import Callable
from types import FrameType

from grafana_operator.logging import get_logger

logger = get_logger(__name__)


class ShutdownHandler:
    """Coordinates shutdown requests from signals or from code.

    The handler owns an event that is set once shutdown is requested; the
    operator hands it to every reconcile as its cancellation signal.
    """

    def __init__(self, on_shutdown: Callable[[], None] | None = None) -> None:
        """Initialize the shutdown handler.

        Args:
            on_shutdown: Optional callback invoked once when shutdown is requested.
        """
        self._event = threading.Event()
        self._on_shutdown = on_shutdown

    @property
    def shutdown_requested(self) -> bool:
        return self._event.is_set()

    @property
    def event(self) -> threading.Event:
        return self._event

    def request_shutdown(self) -> None:
        """Request graceful shutdown; later calls are ignored."""
        if self._event.is_set():
            return
        logger.info("Shutdown requested")
        self._event.set()
        if self._on_shutdown is not None:
            self._on_shutdown()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until shutdown is requested or the timeout expires."""
        return self._event.wait(timeout)

    def handle_signal(self, signum: int, frame: FrameType | None) -> None:
        """Handle shutdown signals (SIGINT, SIGTERM).

        Args:
            signum: The signal number received.
            frame: The current stack frame (unused).
        """
        signal_name = signal.Signals(signum).name
        logger.info("Received %s, initiating graceful shutdown...", signal_name)
        self.request_shutdown()

    def install_signal_handlers(self) -> None:
        signal.signal(signal.SIGINT, self.handle_signal)
        signal.signal(signal.SIGTERM, self.handle_signal)
        logger.debug("Signal handlers installed for SIGINT and SIGTERM")


def create_shutdown_handler(on_shutdown: Callable[[], None] | None = None) -> ShutdownHandler:
    """Create a ShutdownHandler with signal handlers installed."""
    handler = ShutdownHandler(on_shutdown)
    handler.install_signal_handlers()
    return handler


__all__ = [
    "ShutdownHandler",
    "create_shutdown_handler",
]
