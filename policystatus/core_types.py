"""
Core condition types for policy status reporting.

A policy reports its rollout state as a short list of conditions, one per
condition type. ConditionList keeps that list ordered and unique by type.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, ClassVar, Iterable, Iterator, Optional

from policystatus.serialization import SerializableMixin

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class ConditionType(str, Enum):
    """Condition types reported on a policy."""

    AVAILABLE = "Available"
    DEGRADED = "Degraded"


class ConditionStatus(str, Enum):
    """Tri-state status shared by policy, enactment and node conditions."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class ConditionReason(str, Enum):
    """Closed set of reasons a policy condition can carry.

    Declaration order follows the priority order of the aggregation
    branches that produce them.
    """

    CONFIGURATION_PROGRESSING = "ConfigurationProgressing"
    CONFIGURATION_NO_MATCHING_NODE = "ConfigurationNoMatchingNode"
    FAILED_TO_CONFIGURE = "FailedToConfigure"
    SUCCESSFULLY_CONFIGURED = "SuccessfullyConfigured"


@dataclass
class Condition(SerializableMixin):
    """A single policy condition.

    Attributes:
        type: Identity of the condition within its list.
        status: True, False or Unknown.
        reason: Machine-readable reason for the status.
        message: Human-readable detail, may be empty.
        last_heartbeat_time: When the condition was last written.
        last_transition_time: When status, reason or message last changed.
    """

    type: ConditionType
    status: ConditionStatus
    reason: ConditionReason
    message: str = ""
    last_heartbeat_time: Optional[datetime] = None
    last_transition_time: Optional[datetime] = None

    _field_aliases: ClassVar[dict[str, str]] = {
        "last_heartbeat_time": "lastHeartbeatTime",
        "last_transition_time": "lastTransitionTime",
    }

    def same_state(self, status: ConditionStatus, reason: ConditionReason, message: str) -> bool:
        """True if the condition already holds this status, reason and message."""
        return self.status == status and self.reason == reason and self.message == message

    def __str__(self) -> str:
        text = f"{self.type.value}={self.status.value} ({self.reason.value})"
        if self.message:
            text += f": {self.message}"
        return text


class ConditionList:
    """Ordered collection of conditions, unique by condition type.

    ``set`` upserts: an existing condition keeps its position and is
    overwritten, a new type is appended. Iteration follows first-insertion
    order.

    Usage:
        conditions = ConditionList()
        conditions.set(
            ConditionType.AVAILABLE,
            ConditionStatus.TRUE,
            ConditionReason.SUCCESSFULLY_CONFIGURED,
            "3/3 nodes successfully configured",
        )
        conditions.find(ConditionType.AVAILABLE).status  # ConditionStatus.TRUE
    """

    def __init__(self, conditions: Iterable[Condition] = ()):
        self._items: list[Condition] = []
        for condition in conditions:
            if self.find(condition.type) is not None:
                raise ValueError(f"duplicate condition type: {condition.type.value}")
            self._items.append(condition)

    def find(self, condition_type: ConditionType) -> Condition | None:
        """Return the condition of the given type, or None."""
        for condition in self._items:
            if condition.type == condition_type:
                return condition
        return None

    def set(
        self,
        condition_type: ConditionType,
        status: ConditionStatus,
        reason: ConditionReason,
        message: str,
        now: datetime | None = None,
    ) -> Condition:
        """Insert or overwrite the condition of ``condition_type``.

        The heartbeat time is refreshed on every call. The transition time
        only moves when the condition is new or its status, reason or
        message differ from what is stored.

        Returns:
            The stored condition.
        """
        now = now or utc_now()
        condition = self.find(condition_type)
        if condition is None:
            condition = Condition(
                type=condition_type,
                status=status,
                reason=reason,
                message=message,
                last_heartbeat_time=now,
                last_transition_time=now,
            )
            self._items.append(condition)
            return condition

        if not condition.same_state(status, reason, message):
            condition.status = status
            condition.reason = reason
            condition.message = message
            condition.last_transition_time = now
        condition.last_heartbeat_time = now
        return condition

    def copy(self) -> ConditionList:
        """Return a deep copy; mutating it leaves this list untouched."""
        return ConditionList(replace(c) for c in self._items)

    def to_list(self) -> list[dict[str, Any]]:
        """Serialize to the wire shape: a list of camelCase dicts."""
        return [c.to_dict() for c in self._items]

    @classmethod
    def from_list(cls, data: Iterable[dict[str, Any]]) -> ConditionList:
        """Rebuild a list from its wire shape."""
        return cls(Condition.from_dict(item) for item in data)

    def __iter__(self) -> Iterator[Condition]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ConditionList):
            return NotImplemented
        return self._items == other._items

    def __repr__(self) -> str:
        return f"ConditionList({self._items!r})"


__all__ = [
    "Clock",
    "utc_now",
    "ConditionType",
    "ConditionStatus",
    "ConditionReason",
    "Condition",
    "ConditionList",
]
