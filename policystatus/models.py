"""
Object types read and written through the object store.

Only the fields the aggregation needs are modelled: a policy with its
status conditions and resource version, enactments labelled with their
owning policy, and nodes with their status conditions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Optional

from policystatus.core_types import ConditionList, ConditionStatus

ENACTMENT_POLICY_LABEL = "nmstate.io/policy"
"""Label on every enactment naming the policy it belongs to."""

NODE_READY = "Ready"
"""Node condition type that marks a node as ready."""


class ObjectKind(str, Enum):
    """Kinds of objects the store holds."""

    POLICY = "NodeNetworkConfigurationPolicy"
    ENACTMENT = "NodeNetworkConfigurationEnactment"
    NODE = "Node"


class ObjectKey(NamedTuple):
    """Identity of a stored object.

    Policies, enactments and nodes are cluster scoped, so namespace is
    usually empty.
    """

    name: str
    namespace: str = ""

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name


PolicyKey = ObjectKey


@dataclass
class PolicyStatus:
    """Status subresource of a policy."""

    conditions: ConditionList = field(default_factory=ConditionList)


@dataclass
class Policy:
    """A cluster-wide network configuration policy."""

    name: str
    namespace: str = ""
    resource_version: str = ""
    status: PolicyStatus = field(default_factory=PolicyStatus)

    @property
    def key(self) -> PolicyKey:
        return PolicyKey(self.name, self.namespace)


class EnactmentConditionType(str, Enum):
    """Condition types a node agent reports on an enactment."""

    FAILING = "Failing"
    AVAILABLE = "Available"
    PROGRESSING = "Progressing"
    MATCHING = "Matching"


@dataclass
class Enactment:
    """Outcome of applying one policy on one node."""

    name: str
    labels: dict[str, str] = field(default_factory=dict)
    conditions: dict[EnactmentConditionType, ConditionStatus] = field(default_factory=dict)
    resource_version: str = ""

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(self.name)

    @property
    def policy_name(self) -> Optional[str]:
        return self.labels.get(ENACTMENT_POLICY_LABEL)

    def status_of(self, condition_type: EnactmentConditionType) -> ConditionStatus:
        """Status of a condition; a missing condition counts as Unknown."""
        return self.conditions.get(condition_type, ConditionStatus.UNKNOWN)


class NodeCondition(NamedTuple):
    type: str
    status: ConditionStatus


@dataclass
class Node:
    """A cluster node with its status conditions."""

    name: str
    conditions: list[NodeCondition] = field(default_factory=list)
    resource_version: str = ""

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(self.name)


__all__ = [
    "ENACTMENT_POLICY_LABEL",
    "NODE_READY",
    "ObjectKind",
    "ObjectKey",
    "PolicyKey",
    "PolicyStatus",
    "Policy",
    "EnactmentConditionType",
    "Enactment",
    "NodeCondition",
    "Node",
]
