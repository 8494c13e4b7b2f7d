"""Applies planned actions to the cluster.

Actions run sequentially in plan order. Created and updated objects get a
controller owner reference to the Grafana instance so that the orchestrator
deletes them along with it. Updates carry the resource version that was read,
so a concurrent writer turns them into a conflict; conflicts are expected and
skipped, the next reconcile re-reads and retries. Any other error stops the
run. A partially applied plan is fine: the next pass plans from scratch.
"""

from __future__ import annotations

import copy
from collections.abc import Sequence
from dataclasses import dataclass, field

from grafana_operator.cluster import ClusterClient, KubeObject, object_key
from grafana_operator.errors import ClusterConflictError, ClusterNotFoundError
from grafana_operator.logging import get_logger
from grafana_operator.planner import CreateObject, DeleteObject, Noop, ReconcileAction, UpdateObject

logger = get_logger(__name__)


def owner_reference(owner: KubeObject) -> dict[str, object]:
    metadata = owner.get("metadata") or {}
    return {
        "apiVersion": owner.get("apiVersion", ""),
        "kind": owner.get("kind", ""),
        "name": metadata.get("name", ""),
        "uid": metadata.get("uid", ""),
        "controller": True,
        "blockOwnerDeletion": True,
    }


def set_owner(obj: KubeObject, owner: KubeObject) -> KubeObject:
    """Return a copy of ``obj`` whose controller reference points at ``owner``."""
    stamped = copy.deepcopy(obj)
    metadata = stamped.setdefault("metadata", {})
    reference = owner_reference(owner)
    references = [
        existing
        for existing in metadata.get("ownerReferences") or []
        if existing.get("uid") != reference["uid"] and not existing.get("controller")
    ]
    references.append(reference)
    metadata["ownerReferences"] = references
    return stamped


@dataclass
class RunResult:
    """What a run did, per action outcome."""

    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)


def _describe(action: ReconcileAction) -> str:
    obj = action.desired if isinstance(action, CreateObject) else action.current
    namespace, name = object_key(obj)
    return f"{action.kind.kind} {namespace}/{name}"


class ActionRunner:
    """Executes a plan on behalf of one owning Grafana instance.

    Args:
        cluster: Orchestrator client.
        owner: The Grafana instance object, as read from the cluster.
    """

    def __init__(self, cluster: ClusterClient, owner: KubeObject) -> None:
        self.cluster = cluster
        self.owner = owner

    def run(self, actions: Sequence[ReconcileAction]) -> RunResult:
        """Apply ``actions`` in order.

        Raises:
            OperatorError: The first non-conflict failure; later actions are
                not attempted.
        """
        result = RunResult()
        for action in actions:
            target = _describe(action)
            try:
                self._apply(action, result, target)
            except ClusterConflictError as e:
                logger.debug("Conflict applying %s, retrying on next reconcile: %s", target, e)
                result.conflicts.append(target)
        return result

    def _apply(self, action: ReconcileAction, result: RunResult, target: str) -> None:
        if isinstance(action, CreateObject):
            self.cluster.create(action.kind, set_owner(action.desired, self.owner))
            logger.info("Created %s", target)
            result.created.append(target)
        elif isinstance(action, UpdateObject):
            body = set_owner(action.desired, self.owner)
            resource_version = (action.current.get("metadata") or {}).get("resourceVersion")
            if resource_version:
                body["metadata"]["resourceVersion"] = resource_version
            self.cluster.update(action.kind, body)
            logger.info("Updated %s", target)
            result.updated.append(target)
        elif isinstance(action, DeleteObject):
            namespace, name = object_key(action.current)
            try:
                self.cluster.delete(action.kind, namespace, name)
            except ClusterNotFoundError:
                logger.debug("%s already gone", target)
            else:
                logger.info("Deleted %s", target)
            result.deleted.append(target)
        elif isinstance(action, Noop):
            result.unchanged.append(target)


__all__ = [
    "ActionRunner",
    "RunResult",
    "owner_reference",
    "set_owner",
]
