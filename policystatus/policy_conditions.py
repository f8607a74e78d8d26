"""
Entry points that compute and persist policy conditions.

``update`` re-reads the policy, its enactments and the cluster nodes,
aggregates them into the Degraded and Available conditions, and writes the
policy status. ``reset`` clears the conditions. Both run their whole
read-compute-write cycle under a ConflictRetryExecutor, so a write rejected
for a stale resource version is retried from fresh reads.

Usage:
    from policystatus.policy_conditions import PolicyConditions

    conditions = PolicyConditions(store)
    decision = conditions.update("br1-policy")
    decision.outcome  # PolicyOutcome.SUCCESS
    conditions.reset("br1-policy")
"""

from __future__ import annotations

from typing import Any, Callable, Optional, TypeVar, Union

from policystatus.aggregator import PolicyDecision, aggregate
from policystatus.core_types import Clock, ConditionList, utc_now
from policystatus.enactments import ConditionEnactmentCounter
from policystatus.exceptions import (
    PolicyStatusError,
    RetrievalError,
    StatusWriteError,
    is_conflict,
)
from policystatus.logging_config import StructuredLogger, get_logger
from policystatus.models import ENACTMENT_POLICY_LABEL, ObjectKind, Policy, PolicyKey
from policystatus.protocols import EnactmentCounter, ObjectStore, ReadinessProbe, RetryExecutor
from policystatus.readiness import NodeReadinessProbe
from policystatus.resilience import ConflictRetryExecutor
from policystatus.resilience_config import get_retry_config

T = TypeVar("T")

KeyLike = Union[PolicyKey, str]


def _as_key(policy_key: KeyLike) -> PolicyKey:
    if isinstance(policy_key, str):
        return PolicyKey(policy_key)
    return PolicyKey(*policy_key)


class PolicyConditions:
    """
    Computes and persists the aggregate conditions of policies.

    Args:
        store: Object store holding policies, enactments and nodes.
        executor: Retry executor for both operations. When omitted, each
            operation gets a ConflictRetryExecutor configured from
            ``get_retry_config("update")`` / ``get_retry_config("reset")``.
        counter: Reduces enactments to outcome counts.
        probe: Counts ready nodes.
        logger: Base logger; each call binds the policy name onto it.
        clock: Source of condition timestamps.
    """

    def __init__(
        self,
        store: ObjectStore,
        *,
        executor: Optional[RetryExecutor] = None,
        counter: Optional[EnactmentCounter] = None,
        probe: Optional[ReadinessProbe] = None,
        logger: Optional[StructuredLogger] = None,
        clock: Clock = utc_now,
    ):
        self._store = store
        self._update_executor = executor or ConflictRetryExecutor(get_retry_config("update"))
        self._reset_executor = executor or ConflictRetryExecutor(get_retry_config("reset"))
        self._counter = counter or ConditionEnactmentCounter()
        self._probe = probe or NodeReadinessProbe()
        self._logger = logger or get_logger(__name__)
        self._clock = clock

    @staticmethod
    def _run(executor: RetryExecutor, work: Callable[[], T], log: StructuredLogger) -> T:
        if isinstance(executor, ConflictRetryExecutor):
            return executor.execute(work, logger=log)
        return executor.execute(work)

    def update(self, policy_key: KeyLike) -> PolicyDecision:
        """Recompute and persist the conditions of one policy.

        Returns:
            The decision that was persisted.

        Raises:
            RetrievalError: Reading the policy, enactments or nodes failed.
            ConflictError: Every attempt's status write hit a conflict.
            StatusWriteError: The status write failed for another reason.
        """
        key = _as_key(policy_key)
        log = self._logger.with_fields(policy=key.name)

        # Every attempt starts again from the policy read.
        def work() -> PolicyDecision:
            policy = self._get_policy(key)
            enactments = self._read(
                "getting enactments failed",
                self._store.list_objects,
                ObjectKind.ENACTMENT,
                {ENACTMENT_POLICY_LABEL: policy.name},
            )
            nodes = self._read("getting nodes failed", self._store.list_objects, ObjectKind.NODE)

            ready_nodes = self._probe.count_ready(nodes)
            counts = self._counter.count(enactments)
            log.info(f"enactments count: {counts}")

            conditions = policy.status.conditions.copy()
            decision = aggregate(conditions, ready_nodes, counts, now=self._clock(), log=log)
            policy.status.conditions = conditions
            self._write_status(policy, log, "update")
            return decision

        return self._run(self._update_executor, work, log)

    def reset(self, policy_key: KeyLike) -> None:
        """Clear the conditions of one policy.

        Raises:
            RetrievalError: Reading the policy failed.
            ConflictError: Every attempt's status write hit a conflict.
            StatusWriteError: The status write failed for another reason.
        """
        key = _as_key(policy_key)
        log = self._logger.with_fields(policy=key.name)

        def work() -> None:
            policy = self._get_policy(key)
            policy.status.conditions = ConditionList()
            self._write_status(policy, log, "reset")

        self._run(self._reset_executor, work, log)

    def _get_policy(self, key: PolicyKey) -> Policy:
        return self._read("getting policy failed", self._store.get_object, ObjectKind.POLICY, key)

    @staticmethod
    def _read(context: str, read: Any, *args: Any) -> Any:
        try:
            return read(*args)
        except Exception as exc:
            raise RetrievalError(context, exc) from exc

    def _write_status(self, policy: Policy, log: StructuredLogger, operation: str) -> None:
        try:
            self._store.update_status(policy)
        except Exception as exc:
            if is_conflict(exc):
                log.info(f"conflict on policy conditions {operation}, retrying")
                raise
            log.error(f"failed to {operation} policy conditions", error=str(exc))
            if isinstance(exc, PolicyStatusError):
                raise
            raise StatusWriteError(str(policy.key), str(exc)) from exc


def update(store: ObjectStore, policy_key: KeyLike, **kwargs: Any) -> PolicyDecision:
    """Recompute and persist a policy's conditions. See PolicyConditions.update."""
    return PolicyConditions(store, **kwargs).update(policy_key)


def reset(store: ObjectStore, policy_key: KeyLike, **kwargs: Any) -> None:
    """Clear a policy's conditions. See PolicyConditions.reset."""
    PolicyConditions(store, **kwargs).reset(policy_key)


__all__ = ["PolicyConditions", "update", "reset"]
