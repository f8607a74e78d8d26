"""
In-memory object store with optimistic concurrency.

Implements the ObjectStore protocol for tests and for running a
reconciliation driver without a cluster. Every write bumps the object's
resource version; ``update_status`` rejects writes made against a stale
version with ConflictError.

Usage:
    store = InMemoryObjectStore()
    store.add(Policy(name="br1-policy"))
    policy = store.get_object(ObjectKind.POLICY, PolicyKey("br1-policy"))
    policy.status.conditions.set(...)
    store.update_status(policy)  # ConflictError if someone wrote in between
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Optional

from policystatus.exceptions import (
    ConflictError,
    ObjectExistsError,
    ObjectNotFoundError,
    StatusWriteError,
)
from policystatus.models import Enactment, Node, ObjectKey, ObjectKind, Policy

logger = logging.getLogger(__name__)

_KIND_BY_TYPE: dict[type, ObjectKind] = {
    Policy: ObjectKind.POLICY,
    Enactment: ObjectKind.ENACTMENT,
    Node: ObjectKind.NODE,
}


def kind_of(obj: Any) -> ObjectKind:
    """Return the ObjectKind for a model instance."""
    try:
        return _KIND_BY_TYPE[type(obj)]
    except KeyError:
        raise TypeError(f"unsupported object type: {type(obj).__name__}") from None


def _labels_match(obj: Any, labels: Optional[dict[str, str]]) -> bool:
    if not labels:
        return True
    obj_labels = getattr(obj, "labels", None) or {}
    return all(obj_labels.get(k) == v for k, v in labels.items())


class InMemoryObjectStore:
    """Thread-safe in-memory store of policies, enactments and nodes.

    Reads return deep copies, so callers can mutate what they get without
    affecting stored state until they write it back.
    """

    def __init__(self) -> None:
        self._objects: dict[ObjectKind, dict[ObjectKey, Any]] = {kind: {} for kind in ObjectKind}
        self._version = 0
        self._lock = threading.Lock()

    def _next_version(self) -> str:
        # Must be called with _lock held
        self._version += 1
        return str(self._version)

    def add(self, obj: Any) -> Any:
        """Create an object. Raises ObjectExistsError if the key is taken."""
        kind = kind_of(obj)
        with self._lock:
            table = self._objects[kind]
            if obj.key in table:
                raise ObjectExistsError(kind.value, str(obj.key))
            stored = copy.deepcopy(obj)
            stored.resource_version = self._next_version()
            table[obj.key] = stored
            return copy.deepcopy(stored)

    def replace(self, obj: Any) -> Any:
        """Write an object unconditionally, creating it if needed."""
        kind = kind_of(obj)
        with self._lock:
            stored = copy.deepcopy(obj)
            stored.resource_version = self._next_version()
            self._objects[kind][obj.key] = stored
            return copy.deepcopy(stored)

    def delete(self, kind: ObjectKind, key: ObjectKey) -> None:
        with self._lock:
            if self._objects[kind].pop(key, None) is None:
                raise ObjectNotFoundError(kind.value, str(key))

    def get_object(self, kind: ObjectKind, key: ObjectKey) -> Any:
        with self._lock:
            try:
                return copy.deepcopy(self._objects[kind][key])
            except KeyError:
                raise ObjectNotFoundError(kind.value, str(key)) from None

    def list_objects(
        self, kind: ObjectKind, labels: Optional[dict[str, str]] = None
    ) -> list[Any]:
        with self._lock:
            return [
                copy.deepcopy(obj)
                for obj in self._objects[kind].values()
                if _labels_match(obj, labels)
            ]

    def update_status(self, obj: Any) -> Any:
        """Persist ``obj.status`` if ``obj.resource_version`` is current.

        Raises:
            ObjectNotFoundError: The object no longer exists.
            ConflictError: The stored version differs from the caller's.
            StatusWriteError: The object has no status to write.
        """
        kind = kind_of(obj)
        if not hasattr(obj, "status"):
            raise StatusWriteError(str(obj.key), f"{kind.value} has no status subresource")
        with self._lock:
            stored = self._objects[kind].get(obj.key)
            if stored is None:
                raise ObjectNotFoundError(kind.value, str(obj.key))
            if stored.resource_version != obj.resource_version:
                raise ConflictError(str(obj.key), obj.resource_version, stored.resource_version)
            updated = copy.deepcopy(stored)
            updated.status = copy.deepcopy(obj.status)
            updated.resource_version = self._next_version()
            self._objects[kind][obj.key] = updated
            logger.debug(
                f"Updated status of {kind.value} {obj.key} to version {updated.resource_version}"
            )
            return copy.deepcopy(updated)


__all__ = ["InMemoryObjectStore", "kind_of"]
