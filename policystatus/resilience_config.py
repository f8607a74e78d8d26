"""
Retry policy configuration module.

Provides per-operation retry policies for the conflict retry loop, with
support for runtime registration and environment variable overrides.
"""

from __future__ import annotations

import os
from typing import Optional

from policystatus.exceptions import ConfigurationError
from policystatus.resilience import RetryConfig, RetryStrategy

# Default policies per operation. Five attempts with a short, growing delay:
# conflicts on a status write clear as soon as the writer re-reads.
OPERATION_CONFIGS: dict[str, RetryConfig] = {
    "update": RetryConfig(max_retries=4, base_delay=0.01, max_delay=1.0),
    "reset": RetryConfig(max_retries=4, base_delay=0.01, max_delay=1.0),
    "default": RetryConfig(),
}


def _get_env_int(name: str) -> Optional[int]:
    """Get an integer from environment variable, or None if not set/invalid."""
    value = os.environ.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _get_env_float(name: str) -> Optional[float]:
    """Get a float from environment variable, or None if not set/invalid."""
    value = os.environ.get(name)
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _get_env_strategy(name: str) -> Optional[RetryStrategy]:
    """Get a RetryStrategy from environment variable, or None if not set/invalid."""
    value = os.environ.get(name)
    if value is None:
        return None
    try:
        return RetryStrategy(value.strip().lower())
    except ValueError:
        return None


def get_retry_config(operation: Optional[str] = None) -> RetryConfig:
    """Get the retry policy for an operation.

    Resolution order:
    1. Environment variable overrides (applied on top of base config)
    2. Runtime-registered config for the operation
    3. Built-in config for the operation
    4. Default config

    Environment variables:
        POLICYSTATUS_RETRY_MAX_RETRIES: Override retries after the first attempt
        POLICYSTATUS_RETRY_BASE_DELAY: Override base delay in seconds
        POLICYSTATUS_RETRY_MAX_DELAY: Override delay cap in seconds
        POLICYSTATUS_RETRY_STRATEGY: exponential, linear, fibonacci or constant

    Args:
        operation: Operation name (e.g., "update", "reset")

    Returns:
        RetryConfig with appropriate settings

    Raises:
        ConfigurationError: If the overrides produce an invalid config.
    """
    if operation and operation in _REGISTERED_CONFIGS:
        base_config = _REGISTERED_CONFIGS[operation]
    elif operation and operation.lower() in OPERATION_CONFIGS:
        base_config = OPERATION_CONFIGS[operation.lower()]
    else:
        base_config = OPERATION_CONFIGS["default"]

    env_retries = _get_env_int("POLICYSTATUS_RETRY_MAX_RETRIES")
    env_base = _get_env_float("POLICYSTATUS_RETRY_BASE_DELAY")
    env_max = _get_env_float("POLICYSTATUS_RETRY_MAX_DELAY")
    env_strategy = _get_env_strategy("POLICYSTATUS_RETRY_STRATEGY")

    if any(v is not None for v in [env_retries, env_base, env_max, env_strategy]):
        return base_config.with_overrides(
            max_retries=env_retries,
            base_delay=env_base,
            max_delay=env_max,
            strategy=env_strategy,
        )

    return base_config


# Operation configurations registered at runtime
_REGISTERED_CONFIGS: dict[str, RetryConfig] = {}


def register_operation_config(operation: str, config: RetryConfig) -> None:
    """Register a retry policy for an operation, taking precedence over the built-ins.

    Example:
        # Give reset more room under heavy contention
        register_operation_config("reset", RetryConfig(max_retries=10))
    """
    if not isinstance(config, RetryConfig):
        raise ConfigurationError("resilience_config", f"expected RetryConfig for {operation}")
    _REGISTERED_CONFIGS[operation] = config


def unregister_operation_config(operation: str) -> bool:
    """Remove a registered policy. Returns True if one was registered."""
    if operation in _REGISTERED_CONFIGS:
        del _REGISTERED_CONFIGS[operation]
        return True
    return False


def get_registered_operation_configs() -> dict[str, RetryConfig]:
    """Get a copy of the runtime-registered policies."""
    return dict(_REGISTERED_CONFIGS)


def clear_operation_configs() -> None:
    """Clear all runtime-registered policies. Useful for testing."""
    _REGISTERED_CONFIGS.clear()


__all__ = [
    "OPERATION_CONFIGS",
    "get_retry_config",
    "register_operation_config",
    "unregister_operation_config",
    "get_registered_operation_configs",
    "clear_operation_configs",
]
