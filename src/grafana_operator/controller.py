"""Worker pool driving one reconcile engine.

Each controller owns a :class:`WorkQueue` of reconcile requests and a
``ThreadPoolExecutor`` whose workers take requests off the queue. The queue
guarantees that one object is never reconciled by two workers at once, while
different objects run in parallel.

Component Boundaries
--------------------
The Controller is the only component that touches the thread pool. The
watcher feeds it through :meth:`Controller.enqueue`; the engine never sees
the queue.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor

from grafana_operator.engine import (
    ReconcileContext,
    ReconcileEngine,
    ReconcileRequest,
    ReconcileResult,
)
from grafana_operator.logging import get_logger
from grafana_operator.workqueue import WorkQueue

logger = get_logger(__name__)

DEFAULT_MAX_CONCURRENT_RECONCILES = 10

# How often an idle worker re-checks for shutdown (seconds)
WORKER_POLL_INTERVAL = 1.0


class Controller:
    """Runs reconciles for one resource kind.

    Thread Safety:
        :meth:`enqueue` may be called from any thread.

    Args:
        name: Controller name, used for thread names and logs.
        engine: The reconcile engine for the kind.
        max_workers: Number of concurrent reconciles.
        cancel_event: Set on shutdown; handed to every reconcile.
        requeue: Honor requeue requests. Disabled in run-once mode.
    """

    def __init__(
        self,
        name: str,
        engine: ReconcileEngine,
        max_workers: int = DEFAULT_MAX_CONCURRENT_RECONCILES,
        cancel_event: threading.Event | None = None,
        requeue: bool = True,
    ) -> None:
        self.name = name
        self.engine = engine
        self.max_workers = max_workers
        self.cancel_event = cancel_event or threading.Event()
        self.requeue = requeue
        self.queue: WorkQueue[ReconcileRequest] = WorkQueue(name)
        self._executor: ThreadPoolExecutor | None = None
        self._workers: list[Future[None]] = []

    @property
    def running(self) -> bool:
        return (
            self._executor is not None
            and not self.queue.shutting_down
            and any(not worker.done() for worker in self._workers)
        )

    def start(self) -> None:
        if self._executor is not None:
            logger.warning("Controller %s already started", self.name)
            return
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix=f"{self.name}-worker-",
        )
        self._workers = [self._executor.submit(self._worker) for _ in range(self.max_workers)]
        logger.info("Started controller %s with %d workers", self.name, self.max_workers)

    def enqueue(self, request: ReconcileRequest) -> None:
        self.queue.add(request)

    def _worker(self) -> None:
        while True:
            request = self.queue.get(timeout=WORKER_POLL_INTERVAL)
            if request is None:
                if self.queue.shutting_down:
                    return
                continue
            try:
                self.process(request)
            finally:
                self.queue.done(request)

    def process(self, request: ReconcileRequest) -> ReconcileResult:
        """Reconcile one request and schedule its requeue."""
        ctx = ReconcileContext(cancel_event=self.cancel_event)
        try:
            result = self.engine.reconcile(request, ctx)
        except Exception:
            # A bug in a handler must not kill the worker thread.
            logger.exception("Unexpected error reconciling %s %s", self.engine.kind.kind, request)
            result = ReconcileResult(requeue_after=self.engine.requeue_delay)

        if self.requeue and result.requeue_after is not None and not self.cancel_event.is_set():
            self.queue.add_after(request, result.requeue_after)
        return result

    def wait_idle(self, timeout: float | None = None, poll_interval: float = 0.05) -> bool:
        """Block until nothing is queued or processing.

        Returns:
            True if the queue drained, False on timeout.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self.queue.is_idle():
            if deadline is not None and time.monotonic() > deadline:
                return False
            time.sleep(poll_interval)
        return True

    def shutdown(self, wait: bool = True) -> None:
        """Stop taking work and, if ``wait``, let in-flight reconciles finish."""
        self.queue.shut_down()
        if self._executor is not None:
            logger.info("Shutting down controller %s", self.name)
            self._executor.shutdown(wait=wait, cancel_futures=True)
            self._executor = None


__all__ = [
    "Controller",
    "DEFAULT_MAX_CONCURRENT_RECONCILES",
]
