"""Tests for enactment counting and node readiness."""

import pytest

from conftest import make_enactment, make_node
from policystatus.core_types import ConditionStatus
from policystatus.enactments import (
    ConditionCount,
    ConditionEnactmentCounter,
    EnactmentCounts,
    count_enactments,
)
from policystatus.models import Enactment, EnactmentConditionType, Node, NodeCondition
from policystatus.protocols import EnactmentCounter, ReadinessProbe
from policystatus.readiness import NodeReadinessProbe, count_ready_nodes, is_node_ready


class TestEnactmentCounts:
    """Tests for the EnactmentCounts value."""

    def test_finished(self):
        c = EnactmentCounts(matching=3, available=1, failed=1, not_matching=2)
        assert c.finished == 4

    def test_negative_count_rejected(self):
        with pytest.raises(ValueError, match="failed"):
            EnactmentCounts(failed=-1)

    def test_str(self):
        c = EnactmentCounts(matching=3, available=2, failed=1, not_matching=0, progressing=0)
        assert str(c) == "{failed: 1, progressing: 0, available: 2, matching: 3, notMatching: 0}"

    def test_to_dict_uses_wire_names(self):
        c = EnactmentCounts(matching=1, not_matching=2)
        assert c.to_dict() == {
            "matching": 1,
            "available": 0,
            "failed": 0,
            "notMatching": 2,
            "progressing": 0,
        }

    def test_from_dict(self):
        assert EnactmentCounts.from_dict({"matching": 2, "notMatching": 1}) == EnactmentCounts(
            matching=2, not_matching=1
        )


class TestCountEnactments:
    """Tests for count_enactments."""

    def test_empty(self):
        assert count_enactments([]) == EnactmentCounts()

    def test_mixed_outcomes(self):
        enactments = [
            make_enactment("node00", available=True),
            make_enactment("node01", available=True),
            make_enactment("node02", failing=True),
            make_enactment("node03", matching=False),
            make_enactment("node04"),
        ]
        assert count_enactments(enactments) == EnactmentCounts(
            matching=4,
            available=2,
            failed=1,
            not_matching=1,
            progressing=1,
        )

    def test_missing_conditions_count_as_unknown(self):
        """An enactment the agent has not reported on yet counts toward nothing."""
        counts = count_enactments([Enactment(name="node00.br1-policy")])
        assert counts == EnactmentCounts()
        assert counts.finished == 0

    def test_condition_count_tallies_unknown(self):
        tally = ConditionCount()
        tally.add(Enactment(name="node00.br1-policy"))
        tally.add(make_enactment("node01", available=True))
        assert tally.get(EnactmentConditionType.MATCHING, ConditionStatus.UNKNOWN) == 1
        assert tally.get(EnactmentConditionType.MATCHING, ConditionStatus.TRUE) == 1
        assert tally.get(EnactmentConditionType.PROGRESSING, ConditionStatus.UNKNOWN) == 2

    def test_counter_satisfies_protocol(self):
        counter = ConditionEnactmentCounter()
        assert isinstance(counter, EnactmentCounter)
        assert counter.count([make_enactment("node00", available=True)]).available == 1


class TestNodeReadiness:
    """Tests for ready node counting."""

    def test_ready_node(self):
        assert is_node_ready(make_node("node00"))

    def test_not_ready_node(self):
        assert not is_node_ready(make_node("node00", ready=False))

    def test_node_without_conditions_is_not_ready(self):
        assert not is_node_ready(Node(name="node00"))

    def test_unknown_ready_status_is_not_ready(self):
        node = Node(name="node00", conditions=[NodeCondition("Ready", ConditionStatus.UNKNOWN)])
        assert not is_node_ready(node)

    def test_other_condition_types_ignored(self):
        node = Node(
            name="node00",
            conditions=[NodeCondition("MemoryPressure", ConditionStatus.TRUE)],
        )
        assert not is_node_ready(node)

    def test_count_ready_nodes(self):
        nodes = [make_node("node00"), make_node("node01", ready=False), make_node("node02")]
        assert count_ready_nodes(nodes) == 2

    def test_probe_satisfies_protocol(self):
        probe = NodeReadinessProbe()
        assert isinstance(probe, ReadinessProbe)
        assert probe.count_ready([]) == 0
