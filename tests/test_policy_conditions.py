"""
Integration tests for update and reset against the in-memory store.

Tests cover:
- Every aggregation outcome persisted through update
- Reset from populated and empty condition lists
- Conflicts retried from fresh reads, persisting the latest counts
- Read failures and non-conflict write failures surfacing without retry
- Structured logging bound to the policy name
"""

import logging
from collections import Counter
from unittest.mock import MagicMock

import pytest

from conftest import POLICY_NAME, make_enactment, make_node
from policystatus import policy_conditions
from policystatus.aggregator import PolicyOutcome
from policystatus.core_types import ConditionReason, ConditionStatus, ConditionType
from policystatus.enactments import EnactmentCounts
from policystatus.exceptions import (
    ConflictError,
    ObjectNotFoundError,
    RetrievalError,
    StatusWriteError,
)
from policystatus.models import ObjectKind, Policy, PolicyKey
from policystatus.policy_conditions import PolicyConditions
from policystatus.resilience import ConflictRetryExecutor
from policystatus.store import InMemoryObjectStore

pytestmark = pytest.mark.integration

KEY = PolicyKey(POLICY_NAME)


class ScriptedStore(InMemoryObjectStore):
    """In-memory store with call counting and scripted failures."""

    def __init__(self):
        super().__init__()
        self.calls = Counter()
        self.fail = {}
        self.before_write = []

    def _maybe_fail(self, method, kind=None):
        exc = self.fail.get((method, kind))
        if exc is not None:
            raise exc

    def get_object(self, kind, key):
        self.calls["get_object", kind] += 1
        self._maybe_fail("get_object", kind)
        return super().get_object(kind, key)

    def list_objects(self, kind, labels=None):
        self.calls["list_objects", kind] += 1
        self._maybe_fail("list_objects", kind)
        return super().list_objects(kind, labels)

    def update_status(self, obj):
        self.calls["update_status"] += 1
        if self.before_write:
            self.before_write.pop(0)(self)
        self._maybe_fail("update_status")
        return super().update_status(obj)


@pytest.fixture
def cluster():
    """Scripted store with the policy and three ready nodes."""
    store = ScriptedStore()
    store.add(Policy(name=POLICY_NAME))
    for i in range(3):
        store.add(make_node(f"node{i:02d}"))
    return store


@pytest.fixture
def executor(fast_retry):
    return ConflictRetryExecutor(fast_retry, sleep=MagicMock())


def stored_conditions(store):
    policy = InMemoryObjectStore.get_object(store, ObjectKind.POLICY, KEY)
    return policy.status.conditions


def state(conditions, condition_type):
    c = conditions.find(condition_type)
    return (c.status, c.reason, c.message)


class TestUpdateOutcomes:
    """update() persists each outcome."""

    def test_progressing(self, cluster, executor):
        cluster.add(make_enactment("node00", available=True))
        cluster.add(make_enactment("node01"))

        decision = PolicyConditions(cluster, executor=executor).update(KEY)

        assert decision.outcome == PolicyOutcome.PROGRESSING
        conditions = stored_conditions(cluster)
        assert state(conditions, ConditionType.AVAILABLE) == (
            ConditionStatus.UNKNOWN,
            ConditionReason.CONFIGURATION_PROGRESSING,
            "Policy is progressing 1/3 nodes finished",
        )
        assert state(conditions, ConditionType.DEGRADED) == (
            ConditionStatus.UNKNOWN,
            ConditionReason.CONFIGURATION_PROGRESSING,
            "",
        )

    def test_not_matching(self, cluster, executor):
        for i in range(3):
            cluster.add(make_enactment(f"node{i:02d}", matching=False))

        decision = PolicyConditions(cluster, executor=executor).update(KEY)

        assert decision.outcome == PolicyOutcome.NOT_MATCHING
        conditions = stored_conditions(cluster)
        assert state(conditions, ConditionType.DEGRADED) == (
            ConditionStatus.FALSE,
            ConditionReason.CONFIGURATION_NO_MATCHING_NODE,
            "Policy does not match any node",
        )
        assert state(conditions, ConditionType.AVAILABLE) == (
            ConditionStatus.TRUE,
            ConditionReason.CONFIGURATION_NO_MATCHING_NODE,
            "Policy does not match any node",
        )

    def test_failed_to_configure(self, cluster, executor):
        cluster.add(make_enactment("node00", available=True))
        cluster.add(make_enactment("node01", available=True))
        cluster.add(make_enactment("node02", failing=True))

        decision = PolicyConditions(cluster, executor=executor).update(KEY)

        assert decision.outcome == PolicyOutcome.FAILED_TO_CONFIGURE
        conditions = stored_conditions(cluster)
        assert state(conditions, ConditionType.DEGRADED) == (
            ConditionStatus.TRUE,
            ConditionReason.FAILED_TO_CONFIGURE,
            "1/3 nodes failed to configure",
        )
        assert state(conditions, ConditionType.AVAILABLE) == (
            ConditionStatus.FALSE,
            ConditionReason.FAILED_TO_CONFIGURE,
            "",
        )

    def test_success(self, cluster, executor):
        for i in range(3):
            cluster.add(make_enactment(f"node{i:02d}", available=True))

        decision = PolicyConditions(cluster, executor=executor).update(KEY)

        assert decision.outcome == PolicyOutcome.SUCCESS
        conditions = stored_conditions(cluster)
        assert [c.type for c in conditions] == [ConditionType.DEGRADED, ConditionType.AVAILABLE]
        assert state(conditions, ConditionType.AVAILABLE) == (
            ConditionStatus.TRUE,
            ConditionReason.SUCCESSFULLY_CONFIGURED,
            "3/3 nodes successfully configured",
        )

    def test_unready_nodes_not_counted(self, cluster, executor):
        cluster.replace(make_node("node02", ready=False))
        cluster.add(make_enactment("node00", available=True))
        cluster.add(make_enactment("node01", available=True))

        decision = PolicyConditions(cluster, executor=executor).update(KEY)
        assert decision.outcome == PolicyOutcome.SUCCESS
        assert decision.available_message == "2/2 nodes successfully configured"

    def test_other_policies_enactments_ignored(self, cluster, executor):
        for i in range(3):
            cluster.add(make_enactment(f"node{i:02d}", available=True))
            cluster.add(make_enactment(f"node{i:02d}", policy="other", failing=True))

        decision = PolicyConditions(cluster, executor=executor).update(KEY)
        assert decision.outcome == PolicyOutcome.SUCCESS

    def test_accepts_name_or_key(self, cluster, executor):
        conditions = PolicyConditions(cluster, executor=executor)
        assert conditions.update(POLICY_NAME).outcome == PolicyOutcome.PROGRESSING
        assert conditions.update((POLICY_NAME, "")).outcome == PolicyOutcome.PROGRESSING

    def test_uses_injected_clock(self, cluster, executor, fixed_clock):
        PolicyConditions(cluster, executor=executor, clock=fixed_clock).update(KEY)
        for condition in stored_conditions(cluster):
            assert condition.last_transition_time == fixed_clock.now
            assert condition.last_heartbeat_time == fixed_clock.now

    def test_repeated_update_only_refreshes_heartbeat(self, cluster, executor, fixed_clock):
        for i in range(3):
            cluster.add(make_enactment(f"node{i:02d}", available=True))
        conditions = PolicyConditions(cluster, executor=executor, clock=fixed_clock)

        conditions.update(KEY)
        first = stored_conditions(cluster)
        start = fixed_clock.now
        fixed_clock.tick(30)
        conditions.update(KEY)
        second = stored_conditions(cluster)

        def view(cs):
            return [(c.type, c.status, c.reason, c.message, c.last_transition_time) for c in cs]

        assert view(first) == view(second)
        assert all(c.last_transition_time == start for c in second)
        assert all(c.last_heartbeat_time == fixed_clock.now for c in second)

    def test_injected_counter_and_probe(self, cluster, executor):
        counter = MagicMock()
        counter.count.return_value = EnactmentCounts(matching=5, available=5)
        probe = MagicMock()
        probe.count_ready.return_value = 5

        decision = PolicyConditions(
            cluster, executor=executor, counter=counter, probe=probe
        ).update(KEY)

        assert decision.available_message == "5/5 nodes successfully configured"
        counter.count.assert_called_once()
        assert len(probe.count_ready.call_args.args[0]) == 3

    def test_module_level_update(self, cluster, executor):
        decision = policy_conditions.update(cluster, POLICY_NAME, executor=executor)
        assert decision.outcome == PolicyOutcome.PROGRESSING

    def test_default_executor(self, cluster):
        """Without an injected executor the built-in retry policy is used."""
        assert PolicyConditions(cluster).update(KEY).outcome == PolicyOutcome.PROGRESSING


class TestReset:
    """reset() clears the conditions."""

    def test_reset_after_update(self, cluster, executor):
        for i in range(3):
            cluster.add(make_enactment(f"node{i:02d}", available=True))
        conditions = PolicyConditions(cluster, executor=executor)
        conditions.update(KEY)
        assert len(stored_conditions(cluster)) == 2

        assert conditions.reset(KEY) is None
        assert len(stored_conditions(cluster)) == 0

    def test_reset_empty_still_writes(self, cluster, executor):
        before = InMemoryObjectStore.get_object(cluster, ObjectKind.POLICY, KEY)
        policy_conditions.reset(cluster, KEY, executor=executor)
        after = InMemoryObjectStore.get_object(cluster, ObjectKind.POLICY, KEY)

        assert len(after.status.conditions) == 0
        assert after.resource_version != before.resource_version
        assert cluster.calls["update_status"] == 1

    def test_reset_missing_policy(self, store, executor):
        with pytest.raises(RetrievalError, match="^getting policy failed: "):
            PolicyConditions(store, executor=executor).reset("missing")

    def test_reset_retries_conflicts(self, cluster, executor):
        def concurrent_writer(store):
            policy = InMemoryObjectStore.get_object(store, ObjectKind.POLICY, KEY)
            store.replace(policy)

        cluster.before_write.append(concurrent_writer)
        PolicyConditions(cluster, executor=executor).reset(KEY)
        assert cluster.calls["update_status"] == 2
        assert cluster.calls["get_object", ObjectKind.POLICY] == 2


class TestConflictRetry:
    """Conflicting writes rerun the whole read-compute-write cycle."""

    def test_retry_persists_fresh_counts(self, cluster, executor):
        cluster.add(make_enactment("node00", available=True))
        cluster.add(make_enactment("node01", available=True))
        cluster.add(make_enactment("node02"))

        def concurrent_writer(store):
            # node02 finishes and someone else writes the policy in between
            store.replace(make_enactment("node02", available=True))
            policy = InMemoryObjectStore.get_object(store, ObjectKind.POLICY, KEY)
            store.replace(policy)

        cluster.before_write.append(concurrent_writer)

        decision = PolicyConditions(cluster, executor=executor).update(KEY)

        assert decision.outcome == PolicyOutcome.SUCCESS
        assert state(stored_conditions(cluster), ConditionType.AVAILABLE) == (
            ConditionStatus.TRUE,
            ConditionReason.SUCCESSFULLY_CONFIGURED,
            "3/3 nodes successfully configured",
        )
        assert cluster.calls["update_status"] == 2
        assert cluster.calls["get_object", ObjectKind.POLICY] == 2
        assert cluster.calls["list_objects", ObjectKind.ENACTMENT] == 2
        assert cluster.calls["list_objects", ObjectKind.NODE] == 2

    def test_injected_executor_records_attempts(self, cluster, executor):
        """The caller's executor instance sees the retries of update and reset."""
        cluster.before_write.append(lambda store: store.replace(
            InMemoryObjectStore.get_object(store, ObjectKind.POLICY, KEY)
        ))
        conditions = PolicyConditions(cluster, executor=executor)

        conditions.reset(KEY)
        assert executor.attempts == 2
        assert cluster.calls["update_status"] == 2

        conditions.update(KEY)
        assert executor.attempts == 1

    def test_exhausted_conflicts_reraise(self, cluster, executor, fast_retry):
        error = ConflictError(POLICY_NAME, "1", "2")
        cluster.fail["update_status", None] = error

        with pytest.raises(ConflictError) as exc_info:
            PolicyConditions(cluster, executor=executor).update(KEY)

        assert exc_info.value is error
        assert cluster.calls["update_status"] == fast_retry.max_attempts
        assert cluster.calls["get_object", ObjectKind.POLICY] == fast_retry.max_attempts

    def test_conflict_logged_at_info(self, cluster, executor):
        cluster.fail["update_status", None] = ConflictError(POLICY_NAME, "1", "2")
        logger = MagicMock()
        bound = logger.with_fields.return_value

        with pytest.raises(ConflictError):
            PolicyConditions(cluster, executor=executor, logger=logger).update(KEY)

        bound.info.assert_any_call("conflict on policy conditions update, retrying")
        bound.error.assert_not_called()


class TestFailures:
    """Non-conflict failures surface without retry."""

    def test_missing_policy(self, store, executor):
        with pytest.raises(RetrievalError) as exc_info:
            PolicyConditions(store, executor=executor).update("missing")
        assert str(exc_info.value).startswith("getting policy failed: ")
        assert isinstance(exc_info.value.cause, ObjectNotFoundError)

    @pytest.mark.parametrize(
        "kind,context",
        [
            (ObjectKind.ENACTMENT, "getting enactments failed"),
            (ObjectKind.NODE, "getting nodes failed"),
        ],
    )
    def test_list_failures(self, cluster, executor, kind, context):
        cluster.fail["list_objects", kind] = RuntimeError("connection refused")

        with pytest.raises(RetrievalError) as exc_info:
            PolicyConditions(cluster, executor=executor).update(KEY)

        assert str(exc_info.value) == f"{context}: connection refused"
        assert cluster.calls["list_objects", kind] == 1
        assert cluster.calls["update_status"] == 0

    def test_foreign_write_error_wrapped(self, cluster, executor):
        cause = RuntimeError("etcd unavailable")
        cluster.fail["update_status", None] = cause
        logger = MagicMock()
        bound = logger.with_fields.return_value

        with pytest.raises(StatusWriteError) as exc_info:
            PolicyConditions(cluster, executor=executor, logger=logger).update(KEY)

        assert exc_info.value.reason == "etcd unavailable"
        assert exc_info.value.__cause__ is cause
        assert cluster.calls["update_status"] == 1
        bound.error.assert_called_once_with(
            "failed to update policy conditions", error="etcd unavailable"
        )

    def test_store_write_error_passes_through(self, cluster, executor):
        error = StatusWriteError(POLICY_NAME, "forbidden")
        cluster.fail["update_status", None] = error

        with pytest.raises(StatusWriteError) as exc_info:
            PolicyConditions(cluster, executor=executor).reset(KEY)

        assert exc_info.value is error
        assert cluster.calls["update_status"] == 1


class TestLogging:
    """Log output is scoped to the policy."""

    def test_logger_bound_to_policy(self, cluster, executor):
        logger = MagicMock()
        bound = logger.with_fields.return_value

        PolicyConditions(cluster, executor=executor, logger=logger).update(KEY)

        logger.with_fields.assert_called_once_with(policy=POLICY_NAME)
        messages = [c.args[0] for c in bound.info.call_args_list]
        assert messages == [
            "enactments count: "
            "{failed: 0, progressing: 0, available: 0, matching: 0, notMatching: 0}",
            "setPolicyProgressing",
        ]

    def test_records_carry_policy_field(self, cluster, executor, caplog):
        cluster.add(make_enactment("node00", available=True))
        with caplog.at_level(logging.INFO, logger="policystatus"):
            PolicyConditions(cluster, executor=executor).update(KEY)

        records = [r for r in caplog.records if r.name == "policystatus.policy_conditions"]
        assert {r.getMessage() for r in records} >= {"setPolicyProgressing"}
        assert all(r.structured_fields["policy"] == POLICY_NAME for r in records)

    def test_custom_executor_used_as_is(self, cluster):
        runner = MagicMock()
        runner.execute.side_effect = lambda work: work()

        PolicyConditions(cluster, executor=runner).update(KEY)
        runner.execute.assert_called_once()
