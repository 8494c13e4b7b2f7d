"""Generic reconcile engine shared by the three resource kinds.

The engine owns the skeleton every kind follows: fetch the primary object,
register the finalizer before any remote mutation, run the finalize routine
on deletion and only then drop the finalizer, and requeue after a fixed
delay. What differs per kind lives in a :class:`ReconcileHandler`.

Errors raised by a handler are reported through
:meth:`ReconcileHandler.report_failure` (event and, where the kind has one,
status) and never propagate further. A primary object that no longer exists
ends the reconcile without error.
"""

from __future__ import annotations

import copy
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import httpx

from grafana_operator.cluster import ClusterClient, KubeObject, ResourceKind
from grafana_operator.errors import (
    ClusterConflictError,
    ClusterNotFoundError,
    OperatorError,
    ReconcileCancelledError,
)
from grafana_operator.logging import ContextAdapter, get_logger

logger = get_logger(__name__)

DEFAULT_REQUEUE_DELAY = 10.0

# Failures a handler may raise that are reported rather than crashing the worker.
RECONCILE_ERRORS: tuple[type[BaseException], ...] = (OperatorError, httpx.HTTPError)


@dataclass(frozen=True)
class ReconcileRequest:
    """Identity of the object to reconcile."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}" if self.namespace else self.name


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of a pass; ``requeue_after`` is None when no requeue is needed."""

    requeue_after: float | None = None


@dataclass
class ReconcileContext:
    """Per-pass execution context.

    Attributes:
        cancel_event: Set on shutdown; remote calls check it before sending.
    """

    cancel_event: threading.Event = field(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def check_cancelled(self) -> None:
        """Raise :class:`ReconcileCancelledError` once cancellation is requested."""
        if self.cancel_event.is_set():
            raise ReconcileCancelledError("reconcile cancelled")


class ReconcileHandler(ABC):
    """Per-kind behavior plugged into the :class:`ReconcileEngine`.

    Attributes:
        kind: The primary resource kind.
        finalizer: Finalizer registered on the primary object, or None when
            the kind needs no cleanup before deletion.
    """

    kind: ResourceKind
    finalizer: str | None = None

    @abstractmethod
    def sync(self, ctx: ReconcileContext, obj: KubeObject) -> None:
        """Converge the remote state for a live object."""
        pass

    def finalize(self, ctx: ReconcileContext, obj: KubeObject) -> None:
        """Clean up remote state for an object being deleted.

        Raising keeps the finalizer in place so the cleanup is retried.
        """
        pass

    def on_missing(self, request: ReconcileRequest) -> None:
        """Called when the primary object no longer exists."""
        pass

    @abstractmethod
    def report_failure(self, obj: KubeObject, error: BaseException) -> None:
        """Surface a failure to the user (event, status)."""
        pass


def _finalizers(obj: KubeObject) -> list[str]:
    return list((obj.get("metadata") or {}).get("finalizers") or [])


class ReconcileEngine:
    """Runs one reconcile pass for a request, following the shared skeleton.

    Args:
        cluster: Orchestrator client.
        handler: Per-kind behavior.
        requeue_delay: Delay before the next periodic pass, in seconds.
    """

    def __init__(
        self,
        cluster: ClusterClient,
        handler: ReconcileHandler,
        requeue_delay: float = DEFAULT_REQUEUE_DELAY,
    ) -> None:
        self.cluster = cluster
        self.handler = handler
        self.requeue_delay = requeue_delay

    @property
    def kind(self) -> ResourceKind:
        return self.handler.kind

    def reconcile(self, request: ReconcileRequest, ctx: ReconcileContext | None = None) -> ReconcileResult:
        """Reconcile one object.

        Returns:
            The result; a requeue is requested after every pass on a live
            object, successful or not.
        """
        ctx = ctx or ReconcileContext()
        log = logger.with_context(kind=self.kind.kind, namespace=request.namespace, resource=request.name)

        try:
            obj = self.cluster.get(self.kind, request.namespace, request.name)
        except ClusterNotFoundError:
            log.debug("Object no longer exists")
            self.handler.on_missing(request)
            return ReconcileResult()

        metadata = obj.get("metadata") or {}
        finalizer = self.handler.finalizer

        if metadata.get("deletionTimestamp") is not None:
            if finalizer is None or finalizer not in _finalizers(obj):
                return ReconcileResult()
            try:
                self.handler.finalize(ctx, obj)
            except ReconcileCancelledError:
                log.debug("Cleanup cancelled")
                return ReconcileResult()
            except RECONCILE_ERRORS as e:
                log.warning("Cleanup failed, keeping finalizer: %s", e)
                self.handler.report_failure(obj, e)
                return ReconcileResult(requeue_after=self.requeue_delay)
            if self._set_finalizer(obj, present=False, log=log) is None:
                return ReconcileResult(requeue_after=self.requeue_delay)
            return ReconcileResult()

        if finalizer is not None and finalizer not in _finalizers(obj):
            updated = self._set_finalizer(obj, present=True, log=log)
            if updated is None:
                return ReconcileResult(requeue_after=self.requeue_delay)
            obj = updated

        try:
            self.handler.sync(ctx, obj)
        except ReconcileCancelledError:
            log.debug("Reconcile cancelled")
            return ReconcileResult()
        except RECONCILE_ERRORS as e:
            log.warning("Reconcile failed: %s", e)
            self.handler.report_failure(obj, e)

        return ReconcileResult(requeue_after=self.requeue_delay)

    def _set_finalizer(
        self, obj: KubeObject, *, present: bool, log: ContextAdapter
    ) -> KubeObject | None:
        """Add or remove the handler's finalizer; None if the write did not happen."""
        finalizer = self.handler.finalizer
        body = copy.deepcopy(obj)
        metadata = body.setdefault("metadata", {})
        finalizers = [f for f in _finalizers(obj) if f != finalizer]
        if present:
            finalizers.append(finalizer)
        metadata["finalizers"] = finalizers
        try:
            updated = self.cluster.update(self.kind, body)
        except ClusterConflictError as e:
            log.debug("Conflict updating finalizers, retrying on next reconcile: %s", e)
            return None
        except ClusterNotFoundError:
            return None
        log.info("%s finalizer %s", "Added" if present else "Removed", finalizer)
        return updated


__all__ = [
    "DEFAULT_REQUEUE_DELAY",
    "RECONCILE_ERRORS",
    "ReconcileContext",
    "ReconcileEngine",
    "ReconcileHandler",
    "ReconcileRequest",
    "ReconcileResult",
]
