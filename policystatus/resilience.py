"""
Conflict-aware retry for read-modify-write cycles.

A status write against the object store can be rejected because another
writer changed the object after it was read. The decision written was
computed from stale data, so the whole cycle has to run again: the retry
re-runs the unit of work from its first read, never just the write.

Usage:
    executor = ConflictRetryExecutor(RetryConfig(max_retries=4))

    def work() -> None:
        policy = store.get_object(ObjectKind.POLICY, key)
        policy.status.conditions = ConditionList()
        store.update_status(policy)

    executor.execute(work)  # re-raises the last ConflictError when exhausted
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, replace
from enum import Enum
from functools import wraps
from typing import Callable, Iterator, Optional, TypeVar

from policystatus.exceptions import ConfigurationError, is_conflict
from policystatus.logging_config import StructuredLogger, get_logger
from policystatus.protocols import ConflictClassifier

T = TypeVar("T")

RetryCallback = Callable[[int, BaseException, float], None]
"""Called before each backoff sleep with (attempt, exception, delay)."""


class RetryStrategy(str, Enum):
    """How the delay grows between attempts."""

    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    FIBONACCI = "fibonacci"
    CONSTANT = "constant"


class JitterMode(str, Enum):
    """How randomness is applied to a computed delay."""

    NONE = "none"
    ADDITIVE = "additive"  # delay + uniform(0, factor * delay)
    MULTIPLICATIVE = "multiplicative"  # delay * uniform(1 - factor, 1 + factor)
    FULL = "full"  # uniform(0, delay)


def _fibonacci(n: int) -> int:
    a, b = 0, 1
    for _ in range(n):
        a, b = b, a + b
    return a


def calculate_backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL,
    jitter_mode: JitterMode = JitterMode.NONE,
    jitter_factor: float = 0.1,
    rng: Optional[random.Random] = None,
) -> float:
    """Delay before the retry that follows ``attempt`` (0-based).

    Exponential: base * 2^attempt. Linear: base * (attempt + 1).
    Fibonacci: base * fib(attempt + 2). Constant: base.
    The result never exceeds ``max_delay`` and is never negative.
    """
    if strategy == RetryStrategy.EXPONENTIAL:
        # Guard against float overflow on very large attempt numbers
        delay = base_delay * (2 ** min(attempt, 62))
    elif strategy == RetryStrategy.LINEAR:
        delay = base_delay * (attempt + 1)
    elif strategy == RetryStrategy.FIBONACCI:
        delay = base_delay * _fibonacci(attempt + 2)
    else:
        delay = base_delay
    delay = min(delay, max_delay)

    rand = rng or random
    if jitter_mode == JitterMode.ADDITIVE:
        delay += rand.uniform(0, jitter_factor * delay)
    elif jitter_mode == JitterMode.MULTIPLICATIVE:
        delay *= rand.uniform(1 - jitter_factor, 1 + jitter_factor)
    elif jitter_mode == JitterMode.FULL:
        delay = rand.uniform(0, delay)

    return max(0.0, min(delay, max_delay))


@dataclass(frozen=True)
class RetryConfig:
    """Bounded backoff policy for the conflict retry loop.

    Attributes:
        max_retries: Retries after the initial attempt; total attempts is
            ``max_retries + 1``.
        base_delay: Delay in seconds before the first retry.
        max_delay: Upper bound for any single delay.
        strategy: Growth curve of the delay.
        jitter_mode: Randomization applied to each delay.
        jitter_factor: Jitter amplitude as a fraction of the delay.
        on_retry: Optional callback invoked before each backoff sleep.
    """

    max_retries: int = 4
    base_delay: float = 0.01
    max_delay: float = 1.0
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL
    jitter_mode: JitterMode = JitterMode.MULTIPLICATIVE
    jitter_factor: float = 0.1
    on_retry: Optional[RetryCallback] = None

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_retries < 0:
            raise ConfigurationError("RetryConfig", "max_retries must be non-negative")
        if self.base_delay < 0:
            raise ConfigurationError("RetryConfig", "base_delay must be non-negative")
        if self.max_delay < self.base_delay:
            raise ConfigurationError("RetryConfig", "max_delay must be at least base_delay")
        if not 0 <= self.jitter_factor <= 1:
            raise ConfigurationError("RetryConfig", "jitter_factor must be between 0 and 1")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def calculate_delay(self, attempt: int, rng: Optional[random.Random] = None) -> float:
        """Delay before the retry that follows ``attempt`` (0-based)."""
        return calculate_backoff_delay(
            attempt,
            self.base_delay,
            self.max_delay,
            self.strategy,
            self.jitter_mode,
            self.jitter_factor,
            rng,
        )

    def with_overrides(self, **overrides) -> RetryConfig:
        """Create a new config with the given fields replaced; None values are ignored."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


class ExponentialBackoff:
    """Iterator over the delays of an exponential backoff schedule.

    Usage:
        for delay in ExponentialBackoff(base_delay=0.01, max_retries=4):
            ...
    """

    def __init__(
        self,
        base_delay: float = 0.01,
        max_delay: float = 1.0,
        max_retries: int = 4,
        jitter: bool = True,
        rng: Optional[random.Random] = None,
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_retries = max_retries
        self.jitter = jitter
        self._rng = rng
        self._attempt = 0

    def __iter__(self) -> Iterator[float]:
        return self

    def __next__(self) -> float:
        if self._attempt >= self.max_retries:
            raise StopIteration
        delay = calculate_backoff_delay(
            self._attempt,
            self.base_delay,
            self.max_delay,
            RetryStrategy.EXPONENTIAL,
            JitterMode.MULTIPLICATIVE if self.jitter else JitterMode.NONE,
            rng=self._rng,
        )
        self._attempt += 1
        return delay

    def reset(self) -> None:
        self._attempt = 0


class ConflictRetryExecutor:
    """
    Runs a read-compute-write unit of work, retrying it on conflicts.

    The work is a zero-argument callable that performs the full cycle and
    raises on failure. Exceptions accepted by ``is_retryable`` (by default
    optimistic-concurrency conflicts) cause the whole callable to run again
    after a backoff delay, up to ``config.max_retries`` times. Any other
    exception propagates immediately. When retries are exhausted the last
    conflict is re-raised unchanged.

    Args:
        config: Backoff policy. Defaults to RetryConfig().
        is_retryable: Classifier deciding whether a failure is retried.
        sleep: Sleep function, replaceable in tests.
        logger: Structured logger; defaults to this module's logger.
        rng: Random source for jitter.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        is_retryable: ConflictClassifier = is_conflict,
        sleep: Callable[[float], None] = time.sleep,
        logger: Optional[StructuredLogger] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or RetryConfig()
        self._is_retryable = is_retryable
        self._sleep = sleep
        self._logger = logger or get_logger(__name__)
        self._rng = rng
        self.attempts = 0

    def execute(self, work: Callable[[], T], logger: Optional[StructuredLogger] = None) -> T:
        """Run ``work`` until it succeeds, fails permanently, or retries run out.

        ``logger`` replaces the executor's logger for this run only.
        """
        log = logger or self._logger
        attempt = 0
        while True:
            attempt += 1
            self.attempts = attempt
            try:
                return work()
            except Exception as exc:
                if not self._is_retryable(exc):
                    raise
                if attempt >= self.config.max_attempts:
                    log.warning(
                        "Retries exhausted",
                        attempts=attempt,
                        error=str(exc),
                    )
                    raise
                delay = self.config.calculate_delay(attempt - 1, self._rng)
                if self.config.on_retry is not None:
                    self.config.on_retry(attempt, exc, delay)
                log.debug(
                    "Backing off before retry",
                    attempt=attempt,
                    delay_seconds=round(delay, 4),
                )
                self._sleep(delay)


def with_conflict_retry(
    config: Optional[RetryConfig] = None,
    is_retryable: ConflictClassifier = is_conflict,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator form of ConflictRetryExecutor.

    Usage:
        @with_conflict_retry(RetryConfig(max_retries=2))
        def reset_conditions(store, key):
            ...
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            executor = ConflictRetryExecutor(config, is_retryable)
            return executor.execute(lambda: func(*args, **kwargs))

        return wrapper

    return decorator


__all__ = [
    "RetryStrategy",
    "JitterMode",
    "RetryConfig",
    "RetryCallback",
    "calculate_backoff_delay",
    "ExponentialBackoff",
    "ConflictRetryExecutor",
    "with_conflict_retry",
]
