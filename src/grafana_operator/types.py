"""Type definitions and enums for the grafana operator.

This module provides centralized enums for status phases, event types and
error categories, replacing magic strings throughout the codebase with
type-safe constants.

Usage:
    from grafana_operator.types import Phase, EventType

    # Enum usage - since Phase inherits from StrEnum, direct comparison works
    if status.get("phase") == Phase.FAILING:
        ...

    # Validation
    Phase.is_valid("reconciling")  # True
"""

from __future__ import annotations

from enum import StrEnum


class Phase(StrEnum):
    """Status phase written to a custom resource after each pass.

    Values:
        RECONCILING: The last pass converged without error ("reconciling")
        FAILING: The last pass surfaced an error ("failing")
    """

    RECONCILING = "reconciling"
    FAILING = "failing"

    @classmethod
    def is_valid(cls, value: str) -> bool:
        """Check if a string value is a valid phase.

        Args:
            value: The string value to validate.

        Returns:
            True if the value matches a valid phase.
        """
        return value in cls._value2member_map_

    @classmethod
    def values(cls) -> frozenset[str]:
        """Return all valid phase values as a frozenset."""
        return frozenset(member.value for member in cls)


class EventType(StrEnum):
    """Kubernetes event types attached to a resource."""

    NORMAL = "Normal"
    WARNING = "Warning"


class EventReason(StrEnum):
    """Reasons used for events recorded by the controllers."""

    SUCCESS = "Success"
    PROCESSING_ERROR = "ProcessingError"
    UPDATE_ERROR = "UpdateError"


class ErrorKind(StrEnum):
    """Category an error falls into when it is surfaced or retried.

    Values:
        NOT_FOUND: Remote or cluster object absent; drives create logic.
        CONFLICT: Object already exists or was modified concurrently.
        TRANSIENT: Timeouts and connection errors; retried on requeue.
        VALIDATION: Malformed selector, JSON or missing field; needs a spec edit.
        FATAL: Missing credentials or admin URL; needs cluster repair.
        UNKNOWN: Anything else.
    """

    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    TRANSIENT = "transient"
    VALIDATION = "validation"
    FATAL = "fatal"
    UNKNOWN = "unknown"


class SourceType(StrEnum):
    """Content type of a dashboard fetched from a remote URL."""

    JSON = "json"
    JSONNET = "jsonnet"
    UNKNOWN = "unknown"

    @classmethod
    def from_path(cls, path: str) -> SourceType:
        """Classify a URL path by its file extension.

        Args:
            path: The path component of the URL.

        Returns:
            JSONNET for ``.jsonnet``/``.grafonnet``, JSON for ``.json``,
            UNKNOWN otherwise.
        """
        if "." not in path:
            return cls.UNKNOWN
        extension = path.rsplit(".", 1)[-1].strip().lower()
        if extension == "json":
            return cls.JSON
        if extension in ("jsonnet", "grafonnet"):
            return cls.JSONNET
        return cls.UNKNOWN


__all__ = [
    "ErrorKind",
    "EventReason",
    "EventType",
    "Phase",
    "SourceType",
]
