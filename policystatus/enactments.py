"""
Enactment outcome counting.

Reduces the enactments of one policy to the handful of counts the
aggregation decision needs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Iterable

from policystatus.core_types import ConditionStatus
from policystatus.models import Enactment, EnactmentConditionType
from policystatus.serialization import SerializableMixin


@dataclass(frozen=True)
class EnactmentCounts(SerializableMixin):
    """Per-outcome enactment counts for one policy.

    ``available + failed + not_matching`` is normally at most ``matching``,
    but it is not enforced: counts and node readiness come from
    independent reads.
    """

    matching: int = 0
    available: int = 0
    failed: int = 0
    not_matching: int = 0
    progressing: int = 0

    _field_aliases: ClassVar[dict[str, str]] = {"not_matching": "notMatching"}

    def __post_init__(self) -> None:
        for name in ("matching", "available", "failed", "not_matching", "progressing"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")

    @property
    def finished(self) -> int:
        """Enactments that reached a final outcome."""
        return self.available + self.failed + self.not_matching

    def __str__(self) -> str:
        return (
            f"{{failed: {self.failed}, progressing: {self.progressing}, "
            f"available: {self.available}, matching: {self.matching}, "
            f"notMatching: {self.not_matching}}}"
        )


class ConditionCount:
    """Tally of enactment condition statuses, per condition type.

    An enactment without a condition of some type counts as Unknown for
    that type.
    """

    def __init__(self) -> None:
        self._counts: dict[EnactmentConditionType, dict[ConditionStatus, int]] = {
            condition_type: {status: 0 for status in ConditionStatus}
            for condition_type in EnactmentConditionType
        }

    def add(self, enactment: Enactment) -> None:
        for condition_type in EnactmentConditionType:
            self._counts[condition_type][enactment.status_of(condition_type)] += 1

    def get(self, condition_type: EnactmentConditionType, status: ConditionStatus) -> int:
        return self._counts[condition_type][status]

    def to_counts(self) -> EnactmentCounts:
        return EnactmentCounts(
            matching=self.get(EnactmentConditionType.MATCHING, ConditionStatus.TRUE),
            available=self.get(EnactmentConditionType.AVAILABLE, ConditionStatus.TRUE),
            failed=self.get(EnactmentConditionType.FAILING, ConditionStatus.TRUE),
            not_matching=self.get(EnactmentConditionType.MATCHING, ConditionStatus.FALSE),
            progressing=self.get(EnactmentConditionType.PROGRESSING, ConditionStatus.TRUE),
        )


def count_enactments(enactments: Iterable[Enactment]) -> EnactmentCounts:
    """Count enactment outcomes.

    - matching: Matching=True
    - not_matching: Matching=False
    - available: Available=True
    - failed: Failing=True
    - progressing: Progressing=True
    """
    tally = ConditionCount()
    for enactment in enactments:
        tally.add(enactment)
    return tally.to_counts()


class ConditionEnactmentCounter:
    """Default EnactmentCounter: counts enactments by their conditions."""

    def count(self, enactments: Iterable[Enactment]) -> EnactmentCounts:
        return count_enactments(enactments)


__all__ = [
    "EnactmentCounts",
    "ConditionCount",
    "count_enactments",
    "ConditionEnactmentCounter",
]
