"""Exception hierarchy for the grafana operator.

Every error raised inside the reconciliation core derives from
:class:`OperatorError` and falls into one of five categories:

- NotFound: the remote or cluster object is absent. Recoverable, and the
  usual trigger for create logic.
- Conflict: the object already exists with a conflicting identity, or was
  modified concurrently. Recoverable on the next pass.
- TransientNetwork: timeouts and connection errors. Recoverable via requeue.
- Validation: malformed selectors, malformed JSON, missing required fields.
  Recoverable only after the declarer edits the resource.
- Fatal: missing admin credentials or no resolvable admin URL. Recoverable
  only after the cluster state is repaired.

Raw ``httpx`` transport errors are not wrapped by the remote client; use
:func:`classify_error` to map any exception onto the categories above.
"""

from __future__ import annotations

import httpx

from grafana_operator.types import ErrorKind


class OperatorError(Exception):
    """Base class for all errors raised by the reconciliation core."""

    pass


class NotFoundError(OperatorError):
    """Raised when an object does not exist."""

    pass


class ConflictError(OperatorError):
    """Raised when an object exists with a conflicting identity or version."""

    pass


class TransientNetworkError(OperatorError):
    """Raised for network failures that are expected to heal on retry."""

    pass


class ValidationError(OperatorError):
    """Raised when declared content is malformed.

    This exception should be used for:
    - Malformed label selectors
    - Content that is not a JSON object
    - Missing required fields in a resource spec
    - Data-source input rules with an empty side
    """

    pass


class FatalError(OperatorError):
    """Raised when the cluster state prevents building a remote client.

    Example:
        >>> raise FatalError("failed to find admin url")
    """

    pass


class ReconcileCancelledError(OperatorError):
    """Raised when a reconcile is cancelled before it could finish."""

    pass


class GrafanaClientError(OperatorError):
    """Raised when the Grafana REST API answers with an unexpected status.

    Attributes:
        status_code: HTTP status code of the response, if any.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GrafanaNotFoundError(GrafanaClientError, NotFoundError):
    """Raised when the Grafana REST API answers 404."""

    pass


class GrafanaConflictError(GrafanaClientError, ConflictError):
    """Raised when the Grafana REST API answers 409."""

    pass


class ClusterNotFoundError(NotFoundError):
    """Raised when a cluster object does not exist."""

    pass


class ClusterConflictError(ConflictError):
    """Raised when a cluster write loses an optimistic-concurrency race."""

    pass


def classify_error(exc: BaseException) -> ErrorKind:
    """Map an exception onto the operator's error categories.

    Args:
        exc: The exception to classify.

    Returns:
        The ErrorKind the exception belongs to.
    """
    if isinstance(exc, NotFoundError):
        return ErrorKind.NOT_FOUND
    if isinstance(exc, ConflictError):
        return ErrorKind.CONFLICT
    if isinstance(exc, ValidationError):
        return ErrorKind.VALIDATION
    if isinstance(exc, FatalError):
        return ErrorKind.FATAL
    if isinstance(exc, TransientNetworkError | httpx.TransportError | TimeoutError):
        return ErrorKind.TRANSIENT
    return ErrorKind.UNKNOWN


__all__ = [
    "ClusterConflictError",
    "ClusterNotFoundError",
    "ConflictError",
    "FatalError",
    "GrafanaClientError",
    "GrafanaConflictError",
    "GrafanaNotFoundError",
    "NotFoundError",
    "OperatorError",
    "ReconcileCancelledError",
    "TransientNetworkError",
    "ValidationError",
    "classify_error",
]
