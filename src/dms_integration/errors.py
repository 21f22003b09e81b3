"""Error taxonomy for reconciliation.

Every failure raised inside a reconciliation pass is tagged as either
retryable (the controller requeues the intent with backoff) or permanent
(the controller logs it and waits for the next change event):

- RetryableError: object-store failures, write conflicts, monitor-service
  transport errors
- PermanentError: malformed selectors, missing credentials, missing
  cluster identifiers

Not-found is an expected outcome for most lookups and is handled at the
call site; it only reaches the loop when a required object is missing.
"""

from __future__ import annotations


class ReconcileError(Exception):
    """Base class for all reconciliation failures."""

    retryable: bool = True


class RetryableError(ReconcileError):
    """A failure that may succeed on a later pass."""

    retryable = True


class PermanentError(ReconcileError):
    """A configuration failure that retrying cannot fix."""

    retryable = False


# --- Object store ---


class StoreError(RetryableError):
    """Raised when the object store rejects or fails a request."""


class NotFoundError(StoreError):
    """Raised when the requested object does not exist."""

    def __init__(self, kind: str, namespace: str | None, name: str) -> None:
        self.kind = kind
        self.namespace = namespace
        self.name = name
        where = f"{namespace}/{name}" if namespace else name
        super().__init__(f"{kind} {where} not found")


class ConflictError(StoreError):
    """Raised when a write loses an optimistic-concurrency race."""


# --- Monitor service ---


class MonitorServiceError(RetryableError):
    """Raised for transport or non-2xx failures from the monitor API."""

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)


# --- Configuration ---


class SelectorError(PermanentError):
    """Raised for a malformed label selector."""


class CredentialError(PermanentError):
    """Raised when the monitor API key cannot be resolved."""


class ClusterIDError(PermanentError):
    """Raised when an installed cluster has no cluster identifier."""


def classify(exc: BaseException) -> bool:
    """Return ``True`` if *exc* should be retried.

    Exceptions outside the taxonomy are treated as retryable.
    """
    if isinstance(exc, ReconcileError):
        return exc.retryable
    return True
