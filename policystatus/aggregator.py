"""
Policy condition aggregation.

Maps the number of ready nodes and the enactment outcome counts of a
policy to exactly one of four outcomes, and writes that outcome to the
policy's Degraded and Available conditions.

The outcomes are checked in a fixed priority order, first match wins:

1. PROGRESSING: fewer enactments finished than there are ready nodes
2. NOT_MATCHING: no enactment matches its node
3. FAILED_TO_CONFIGURE: at least one enactment failed
4. SUCCESS: everything else
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from policystatus.core_types import (
    ConditionList,
    ConditionReason,
    ConditionStatus,
    ConditionType,
)
from policystatus.enactments import EnactmentCounts
from policystatus.logging_config import StructuredLogger, get_logger

logger = get_logger(__name__)

NO_MATCHING_NODE_MESSAGE = "Policy does not match any node"


class PolicyOutcome(Enum):
    """Aggregate rollout outcome. Declaration order is evaluation priority."""

    PROGRESSING = "progressing"
    NOT_MATCHING = "not_matching"
    FAILED_TO_CONFIGURE = "failed_to_configure"
    SUCCESS = "success"

    @property
    def reason(self) -> ConditionReason:
        return _OUTCOME_REASONS[self]


_OUTCOME_REASONS = {
    PolicyOutcome.PROGRESSING: ConditionReason.CONFIGURATION_PROGRESSING,
    PolicyOutcome.NOT_MATCHING: ConditionReason.CONFIGURATION_NO_MATCHING_NODE,
    PolicyOutcome.FAILED_TO_CONFIGURE: ConditionReason.FAILED_TO_CONFIGURE,
    PolicyOutcome.SUCCESS: ConditionReason.SUCCESSFULLY_CONFIGURED,
}


@dataclass(frozen=True)
class PolicyDecision:
    """The two condition values an outcome produces."""

    outcome: PolicyOutcome
    degraded: ConditionStatus
    degraded_message: str
    available: ConditionStatus
    available_message: str

    @property
    def reason(self) -> ConditionReason:
        return self.outcome.reason


def decide(ready_nodes: int, counts: EnactmentCounts) -> PolicyDecision:
    """Pure decision: which outcome the counts describe, and its messages.

    ``finished`` may exceed ``ready_nodes`` while a node is going
    unready; that is not an error.

    Raises:
        ValueError: If ready_nodes is negative.
    """
    if ready_nodes < 0:
        raise ValueError("ready_nodes must be non-negative")

    finished = counts.finished
    if finished < ready_nodes:
        return PolicyDecision(
            outcome=PolicyOutcome.PROGRESSING,
            degraded=ConditionStatus.UNKNOWN,
            degraded_message="",
            available=ConditionStatus.UNKNOWN,
            available_message=f"Policy is progressing {finished}/{ready_nodes} nodes finished",
        )
    if counts.matching == 0:
        return PolicyDecision(
            outcome=PolicyOutcome.NOT_MATCHING,
            degraded=ConditionStatus.FALSE,
            degraded_message=NO_MATCHING_NODE_MESSAGE,
            available=ConditionStatus.TRUE,
            available_message=NO_MATCHING_NODE_MESSAGE,
        )
    if counts.failed > 0:
        return PolicyDecision(
            outcome=PolicyOutcome.FAILED_TO_CONFIGURE,
            degraded=ConditionStatus.TRUE,
            degraded_message=f"{counts.failed}/{counts.matching} nodes failed to configure",
            available=ConditionStatus.FALSE,
            available_message="",
        )
    # Denominator is `available`, not `matching`.
    return PolicyDecision(
        outcome=PolicyOutcome.SUCCESS,
        degraded=ConditionStatus.FALSE,
        degraded_message="",
        available=ConditionStatus.TRUE,
        available_message=(
            f"{counts.available}/{counts.available} nodes successfully configured"
        ),
    )


def apply_decision(
    conditions: ConditionList,
    decision: PolicyDecision,
    now: Optional[datetime] = None,
) -> None:
    """Upsert Degraded then Available into ``conditions``."""
    conditions.set(
        ConditionType.DEGRADED,
        decision.degraded,
        decision.reason,
        decision.degraded_message,
        now=now,
    )
    conditions.set(
        ConditionType.AVAILABLE,
        decision.available,
        decision.reason,
        decision.available_message,
        now=now,
    )


def aggregate(
    conditions: ConditionList,
    ready_nodes: int,
    counts: EnactmentCounts,
    now: Optional[datetime] = None,
    log: Optional[StructuredLogger] = None,
) -> PolicyDecision:
    """Decide the outcome for the given counts and write it to ``conditions``."""
    decision = decide(ready_nodes, counts)
    (log or logger).info(
        f"setPolicy{_LOG_NAMES[decision.outcome]}",
        ready_nodes=ready_nodes,
        enactments=str(counts),
    )
    apply_decision(conditions, decision, now=now)
    return decision


_LOG_NAMES = {
    PolicyOutcome.PROGRESSING: "Progressing",
    PolicyOutcome.NOT_MATCHING: "NotMatching",
    PolicyOutcome.FAILED_TO_CONFIGURE: "FailedToConfigure",
    PolicyOutcome.SUCCESS: "Success",
}


__all__ = [
    "NO_MATCHING_NODE_MESSAGE",
    "PolicyOutcome",
    "PolicyDecision",
    "decide",
    "apply_decision",
    "aggregate",
]
