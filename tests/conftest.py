"""
Shared pytest fixtures for the policystatus test suite.

This module provides common fixtures used across multiple test files,
reducing duplication and ensuring consistent test setup.
"""

from datetime import datetime, timedelta, timezone

import pytest

from policystatus.core_types import ConditionStatus
from policystatus.logging_config import clear_context
from policystatus.models import (
    ENACTMENT_POLICY_LABEL,
    Enactment,
    EnactmentConditionType,
    Node,
    NodeCondition,
    Policy,
)
from policystatus.resilience import JitterMode, RetryConfig
from policystatus.resilience_config import clear_operation_configs
from policystatus.store import InMemoryObjectStore

POLICY_NAME = "br1-policy"


# ============================================================================
# Test Tier Configuration
# ============================================================================


def pytest_configure(config):
    """Register custom pytest markers for test tiers.

    - unit: isolated tests of one module
    - integration: tests running update/reset against the in-memory store
    - slow: tests that really sleep or spin threads
    """
    config.addinivalue_line("markers", "unit: isolated unit tests with no collaborators")
    config.addinivalue_line(
        "markers", "integration: tests exercising update/reset end to end"
    )
    config.addinivalue_line("markers", "slow: long-running tests")


# ============================================================================
# Global Test Setup
# ============================================================================


@pytest.fixture(autouse=True)
def reset_runtime_registries():
    """Clear runtime-registered retry configs and log context around each test."""
    clear_operation_configs()
    clear_context()
    yield
    clear_operation_configs()
    clear_context()


@pytest.fixture(autouse=True)
def clean_retry_env(monkeypatch):
    """Keep retry environment overrides from leaking in from the shell."""
    for name in (
        "POLICYSTATUS_RETRY_MAX_RETRIES",
        "POLICYSTATUS_RETRY_BASE_DELAY",
        "POLICYSTATUS_RETRY_MAX_DELAY",
        "POLICYSTATUS_RETRY_STRATEGY",
    ):
        monkeypatch.delenv(name, raising=False)


# ============================================================================
# Object Builders
# ============================================================================


def make_node(name, ready=True):
    status = ConditionStatus.TRUE if ready else ConditionStatus.FALSE
    return Node(name=name, conditions=[NodeCondition("Ready", status)])


def make_enactment(node, policy=POLICY_NAME, matching=True, available=False, failing=False):
    conditions = {
        EnactmentConditionType.MATCHING: (
            ConditionStatus.TRUE if matching else ConditionStatus.FALSE
        ),
        EnactmentConditionType.AVAILABLE: (
            ConditionStatus.TRUE if available else ConditionStatus.FALSE
        ),
        EnactmentConditionType.FAILING: (
            ConditionStatus.TRUE if failing else ConditionStatus.FALSE
        ),
    }
    if matching and not (available or failing):
        conditions[EnactmentConditionType.PROGRESSING] = ConditionStatus.TRUE
    return Enactment(
        name=f"{node}.{policy}",
        labels={ENACTMENT_POLICY_LABEL: policy},
        conditions=conditions,
    )


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def store():
    """Empty in-memory object store."""
    return InMemoryObjectStore()


@pytest.fixture
def policy_store(store):
    """Store with one policy and three ready nodes, no enactments yet."""
    store.add(Policy(name=POLICY_NAME))
    for i in range(3):
        store.add(make_node(f"node{i:02d}"))
    return store


@pytest.fixture
def fast_retry():
    """Deterministic retry config with zero delay."""
    return RetryConfig(max_retries=4, base_delay=0.0, max_delay=0.0, jitter_mode=JitterMode.NONE)


@pytest.fixture
def fixed_clock():
    """Clock returning a fixed instant; advance with clock.tick()."""

    class FixedClock:
        def __init__(self):
            self.now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

        def __call__(self):
            return self.now

        def tick(self, seconds=1):
            self.now += timedelta(seconds=seconds)

    return FixedClock()
