"""
Custom exception types for policystatus.

This module defines the hierarchy of exceptions raised by the aggregation
and retry layers. Every error carries a ``kind`` that is fixed when the
error is created, so callers classify failures by reading one attribute:

- No unwrapping of ``__cause__`` chains to decide whether to retry
- Wrapped read failures keep the kind of the failure they wrap
- ``is_conflict`` is the single classifier used by the retry executor
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Classification of a policystatus error.

    Because this inherits from ``str``, kinds compare equal to their
    plain string values::

        assert ErrorKind.CONFLICT == "conflict"
    """

    NOT_FOUND = "not_found"
    CONFLICT = "conflict"  # Optimistic-concurrency version mismatch
    RETRIEVAL = "retrieval"  # A get or list against the store failed
    WRITE = "write"  # A status write failed for a non-conflict reason
    INVALID = "invalid"  # Bad input or configuration


class PolicyStatusError(Exception):
    """Base exception for all policystatus errors.

    All custom exceptions in policystatus inherit from this class to enable
    catching every library error with a single handler.
    """

    kind: ErrorKind = ErrorKind.INVALID

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        kind: ErrorKind | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if kind is not None:
            self.kind = kind

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


# ============================================================================
# Store Errors
# ============================================================================


class StoreError(PolicyStatusError):
    """Base exception for object store errors."""

    pass


class ObjectNotFoundError(StoreError):
    """Raised when a requested object does not exist in the store."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, kind_name: str, key: str):
        super().__init__(f"{kind_name} not found: {key}", {"object_kind": kind_name, "key": key})
        self.object_kind = kind_name
        self.key = key


class ObjectExistsError(StoreError):
    """Raised when creating an object whose key is already taken."""

    def __init__(self, kind_name: str, key: str):
        super().__init__(
            f"{kind_name} already exists: {key}", {"object_kind": kind_name, "key": key}
        )
        self.object_kind = kind_name
        self.key = key


class ConflictError(StoreError):
    """Raised when a status write is rejected because the stored version changed."""

    kind = ErrorKind.CONFLICT

    def __init__(self, key: str, expected_version: str, actual_version: str):
        super().__init__(
            f"Operation cannot be fulfilled on {key}: the object has been modified",
            {
                "key": key,
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
        )
        self.key = key
        self.expected_version = expected_version
        self.actual_version = actual_version


class StatusWriteError(StoreError):
    """Raised when a status write fails for a reason other than a conflict."""

    kind = ErrorKind.WRITE

    def __init__(self, key: str, reason: str):
        super().__init__(f"Status update failed for {key}: {reason}", {"key": key})
        self.key = key
        self.reason = reason


class RetrievalError(PolicyStatusError):
    """Raised when reading the objects a decision is based on fails.

    The message is ``"<context>: <cause>"``. The kind is inherited from the
    cause when the cause is itself a policystatus error with the conflict
    kind, and is ``RETRIEVAL`` otherwise.
    """

    kind = ErrorKind.RETRIEVAL

    def __init__(self, context: str, cause: BaseException):
        super().__init__(
            f"{context}: {cause}",
            kind=ErrorKind.CONFLICT if is_conflict(cause) else ErrorKind.RETRIEVAL,
        )
        self.context = context
        self.cause = cause


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigurationError(PolicyStatusError):
    """Raised when a component's configuration is missing or invalid."""

    def __init__(self, component: str, reason: str):
        super().__init__(
            f"Configuration error in {component}: {reason}",
            {"component": component, "reason": reason},
        )
        self.component = component
        self.reason = reason


def is_conflict(exc: BaseException) -> bool:
    """Return True if ``exc`` is an optimistic-concurrency conflict."""
    return isinstance(exc, PolicyStatusError) and exc.kind == ErrorKind.CONFLICT


__all__ = [
    "ErrorKind",
    "PolicyStatusError",
    "StoreError",
    "ObjectNotFoundError",
    "ObjectExistsError",
    "ConflictError",
    "StatusWriteError",
    "RetrievalError",
    "ConfigurationError",
    "is_conflict",
]
