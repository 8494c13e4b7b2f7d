"""Turns orchestrator change notifications into reconcile requests.

One thread per watched kind lists every object (enqueueing each), then
streams watch events until the resync period elapses, and starts over. A
failed list or watch is retried after a short backoff. Children owned by a
Grafana instance map to the instance through their controller owner
reference.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass

from grafana_operator.cluster import ClusterClient, KubeObject, ResourceKind, object_key
from grafana_operator.controller import Controller
from grafana_operator.engine import ReconcileRequest
from grafana_operator.logging import get_logger
from grafana_operator.models import API_VERSION, KIND_GRAFANA

logger = get_logger(__name__)

DEFAULT_RESYNC_PERIOD = 300
DEFAULT_ERROR_BACKOFF = 5.0

type KeyMapper = Callable[[KubeObject], Iterable[ReconcileRequest]]


def primary_key(obj: KubeObject) -> Iterator[ReconcileRequest]:
    """The object itself."""
    namespace, name = object_key(obj)
    if name:
        yield ReconcileRequest(namespace, name)


def grafana_owner_key(obj: KubeObject) -> Iterator[ReconcileRequest]:
    """The Grafana instance controlling the object, if any."""
    namespace, _ = object_key(obj)
    for reference in (obj.get("metadata") or {}).get("ownerReferences") or []:
        if (
            reference.get("controller")
            and reference.get("kind") == KIND_GRAFANA
            and reference.get("apiVersion") == API_VERSION
        ):
            yield ReconcileRequest(namespace, reference.get("name", ""))


@dataclass(frozen=True)
class WatchSource:
    """A kind to watch, how its objects map to requests, and where they go."""

    kind: ResourceKind
    controller: Controller
    mapper: KeyMapper = primary_key


class Watcher:
    """Feeds controllers from list and watch calls.

    Args:
        cluster: Orchestrator client.
        sources: What to watch.
        namespace: Restrict to one namespace; None watches all.
        resync_period: Seconds after which a watch is restarted with a full
            relist, which also re-enqueues every object.
        error_backoff: Seconds to wait after a failed list or watch.
    """

    def __init__(
        self,
        cluster: ClusterClient,
        sources: Iterable[WatchSource],
        namespace: str | None = None,
        resync_period: int = DEFAULT_RESYNC_PERIOD,
        error_backoff: float = DEFAULT_ERROR_BACKOFF,
    ) -> None:
        self.cluster = cluster
        self.sources = list(sources)
        self.namespace = namespace or None
        self.resync_period = resync_period
        self.error_backoff = error_backoff
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []

    def _dispatch(self, source: WatchSource, obj: KubeObject) -> None:
        for request in source.mapper(obj):
            source.controller.enqueue(request)

    def list_once(self) -> int:
        """List every source once and enqueue what was found.

        Returns:
            Number of objects listed.
        """
        count = 0
        for source in self.sources:
            for obj in self.cluster.list(source.kind, self.namespace):
                self._dispatch(source, obj)
                count += 1
        return count

    def start(self) -> None:
        for source in self.sources:
            thread = threading.Thread(
                target=self._run,
                args=(source,),
                name=f"watch-{source.kind.plural}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)
        logger.info("Watching %d kinds", len(self.sources))

    def _run(self, source: WatchSource) -> None:
        while not self._stop_event.is_set():
            try:
                for obj in self.cluster.list(source.kind, self.namespace):
                    self._dispatch(source, obj)
                for event in self.cluster.watch(
                    source.kind, self.namespace, self._stop_event, self.resync_period
                ):
                    self._dispatch(source, event.object)
            except Exception as e:
                # Any client failure ends this round; the loop relists.
                logger.warning("Watch on %s failed, retrying: %s", source.kind, e)
                self._stop_event.wait(self.error_backoff)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads.clear()


__all__ = [
    "DEFAULT_RESYNC_PERIOD",
    "KeyMapper",
    "WatchSource",
    "Watcher",
    "grafana_owner_key",
    "primary_key",
]
