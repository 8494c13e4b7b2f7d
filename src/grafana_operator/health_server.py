"""Probe server for the operator.

The FastAPI probe application is served by uvicorn in a daemon thread next
to the controllers.
"""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import uvicorn
    from starlette.types import ASGIApp

from grafana_operator.logging import get_logger

logger = get_logger(__name__)

STARTUP_TIMEOUT = 5.0


class HealthServer:
    """Background uvicorn server for the probe endpoints.

    Example:
        server = HealthServer(host="0.0.0.0", port=8081)
        server.start(create_app(HealthChecker(operator)))
        ...
        server.shutdown()
    """

    def __init__(self, host: str, port: int) -> None:
        self._host = host
        self._port = port
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    @property
    def is_running(self) -> bool:
        return self._server is not None and self._server.started

    def start(self, app: ASGIApp) -> None:
        """Start serving in a background thread.

        Blocks until uvicorn reports it has started, or for at most
        ``STARTUP_TIMEOUT`` seconds.
        """
        import uvicorn

        config = uvicorn.Config(
            app=app,
            host=self._host,
            port=self._port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        server = self._server

        self._thread = threading.Thread(target=server.run, name="health-server", daemon=True)
        self._thread.start()

        start_wait = time.monotonic()
        while not self._server.started:
            if time.monotonic() - start_wait > STARTUP_TIMEOUT:
                logger.warning("Health server startup timed out, continuing anyway")
                break
            time.sleep(0.05)

        if self._server.started:
            logger.info("Health server started at http://%s:%s", self._host, self._port)

    def shutdown(self) -> None:
        """Stop the server and wait up to five seconds for its thread."""
        if self._server is None:
            return
        logger.info("Shutting down health server...")
        self._server.should_exit = True
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=5.0)
            if self._thread.is_alive():
                logger.warning("Health server thread did not terminate gracefully")


__all__ = ["HealthServer"]
