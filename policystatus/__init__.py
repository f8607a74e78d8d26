"""
policystatus: aggregate rollout status for cluster network policies.

A policy is applied on every node it selects; each node agent reports the
outcome as an enactment. This package reduces the enactments and the ready
node count to a single rollout outcome and persists it as the policy's
Degraded and Available conditions.

=== CORE FEATURES ===

AGGREGATION:
- Four mutually exclusive outcomes checked in a fixed priority order:
  progressing, no matching node, failed to configure, success
- Pure decision function, separate from the condition upserts

CONCURRENCY:
- Optimistic-concurrency read-modify-write with conflict-aware retry
- Every retry re-reads policy, enactments and nodes
- Bounded backoff configurable per operation and from the environment

COLLABORATORS:
- Object store, enactment counter and readiness probe are protocols
- In-memory reference store with resource-version checks
"""

from __future__ import annotations

import importlib
from typing import Any

from policystatus.__version__ import __version__

_EXPORT_MAP = {
    # Conditions
    'Condition': ('policystatus.core_types', 'Condition'),
    'ConditionList': ('policystatus.core_types', 'ConditionList'),
    'ConditionReason': ('policystatus.core_types', 'ConditionReason'),
    'ConditionStatus': ('policystatus.core_types', 'ConditionStatus'),
    'ConditionType': ('policystatus.core_types', 'ConditionType'),
    # Objects
    'Enactment': ('policystatus.models', 'Enactment'),
    'EnactmentConditionType': ('policystatus.models', 'EnactmentConditionType'),
    'Node': ('policystatus.models', 'Node'),
    'NodeCondition': ('policystatus.models', 'NodeCondition'),
    'ObjectKey': ('policystatus.models', 'ObjectKey'),
    'ObjectKind': ('policystatus.models', 'ObjectKind'),
    'Policy': ('policystatus.models', 'Policy'),
    'PolicyKey': ('policystatus.models', 'PolicyKey'),
    'PolicyStatus': ('policystatus.models', 'PolicyStatus'),
    # Counting
    'EnactmentCounts': ('policystatus.enactments', 'EnactmentCounts'),
    'count_enactments': ('policystatus.enactments', 'count_enactments'),
    'count_ready_nodes': ('policystatus.readiness', 'count_ready_nodes'),
    # Aggregation
    'PolicyDecision': ('policystatus.aggregator', 'PolicyDecision'),
    'PolicyOutcome': ('policystatus.aggregator', 'PolicyOutcome'),
    'aggregate': ('policystatus.aggregator', 'aggregate'),
    'decide': ('policystatus.aggregator', 'decide'),
    # Entry points
    'PolicyConditions': ('policystatus.policy_conditions', 'PolicyConditions'),
    'update': ('policystatus.policy_conditions', 'update'),
    'reset': ('policystatus.policy_conditions', 'reset'),
    # Resilience
    'ConflictRetryExecutor': ('policystatus.resilience', 'ConflictRetryExecutor'),
    'RetryConfig': ('policystatus.resilience', 'RetryConfig'),
    'RetryStrategy': ('policystatus.resilience', 'RetryStrategy'),
    'get_retry_config': ('policystatus.resilience_config', 'get_retry_config'),
    # Store
    'InMemoryObjectStore': ('policystatus.store', 'InMemoryObjectStore'),
    'ObjectStore': ('policystatus.protocols', 'ObjectStore'),
    # Errors
    'ConflictError': ('policystatus.exceptions', 'ConflictError'),
    'ErrorKind': ('policystatus.exceptions', 'ErrorKind'),
    'ObjectNotFoundError': ('policystatus.exceptions', 'ObjectNotFoundError'),
    'PolicyStatusError': ('policystatus.exceptions', 'PolicyStatusError'),
    'RetrievalError': ('policystatus.exceptions', 'RetrievalError'),
    'StatusWriteError': ('policystatus.exceptions', 'StatusWriteError'),
    'is_conflict': ('policystatus.exceptions', 'is_conflict'),
}


def __getattr__(name: str) -> Any:
    """Lazily import public symbols to avoid import cycles and side effects."""
    try:
        module_name, attr_name = _EXPORT_MAP[name]
    except KeyError as exc:
        raise AttributeError(f"module 'policystatus' has no attribute {name!r}") from exc
    module = importlib.import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(set(globals()) | set(__all__))


__all__ = ["__version__", *_EXPORT_MAP]
