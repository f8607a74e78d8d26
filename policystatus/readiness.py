"""Node readiness counting."""

from __future__ import annotations

from typing import Iterable

from policystatus.core_types import ConditionStatus
from policystatus.models import NODE_READY, Node


def is_node_ready(node: Node) -> bool:
    """A node is ready when it reports a Ready=True condition."""
    return any(c.type == NODE_READY and c.status == ConditionStatus.TRUE for c in node.conditions)


def count_ready_nodes(nodes: Iterable[Node]) -> int:
    return sum(1 for node in nodes if is_node_ready(node))


class NodeReadinessProbe:
    """Default ReadinessProbe: counts nodes with Ready=True."""

    def count_ready(self, nodes: Iterable[Node]) -> int:
        return count_ready_nodes(nodes)


__all__ = ["is_node_ready", "count_ready_nodes", "NodeReadinessProbe"]
