"""
Protocol definitions for the collaborators policystatus depends on.

These protocols define the interfaces that store clients and counting
strategies must follow, enabling better type checking and easier testing
with mock implementations.

Usage:
    from policystatus.protocols import ObjectStore

    def reset_all(store: ObjectStore) -> None:
        for policy in store.list_objects(ObjectKind.POLICY):
            ...
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Optional, Protocol, TypeVar, runtime_checkable

from policystatus.enactments import EnactmentCounts
from policystatus.models import Enactment, Node, ObjectKey, ObjectKind

T = TypeVar("T")

ConflictClassifier = Callable[[BaseException], bool]
"""Decides whether a failed attempt should be retried."""


@runtime_checkable
class ObjectStore(Protocol):
    """Protocol for the object store holding policies, enactments and nodes.

    Writes use optimistic concurrency: ``update_status`` compares the
    resource version of the object passed in with the stored one.
    """

    def get_object(self, kind: ObjectKind, key: ObjectKey) -> Any:
        """Get one object. Raises ObjectNotFoundError if it does not exist."""
        ...

    def list_objects(
        self, kind: ObjectKind, labels: Optional[dict[str, str]] = None
    ) -> list[Any]:
        """List objects of a kind, keeping only those whose labels match exactly."""
        ...

    def update_status(self, obj: Any) -> Any:
        """Persist the status of ``obj``.

        Raises ConflictError if the stored resource version differs from
        ``obj.resource_version``. Returns the stored object with its new
        resource version.
        """
        ...


@runtime_checkable
class EnactmentCounter(Protocol):
    """Protocol for reducing a policy's enactments to outcome counts."""

    def count(self, enactments: Iterable[Enactment]) -> EnactmentCounts:
        ...


@runtime_checkable
class ReadinessProbe(Protocol):
    """Protocol for counting ready nodes."""

    def count_ready(self, nodes: Iterable[Node]) -> int:
        ...


@runtime_checkable
class RetryExecutor(Protocol):
    """Protocol for running a read-compute-write unit of work with retries."""

    def execute(self, work: Callable[[], T]) -> T:
        ...


__all__ = [
    "ConflictClassifier",
    "ObjectStore",
    "EnactmentCounter",
    "ReadinessProbe",
    "RetryExecutor",
]
