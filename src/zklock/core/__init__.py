"""Core module - Foundation components with no internal dependencies.

This module provides the basic building blocks used throughout the package:
- Version information
- Custom exceptions
- Configuration dataclasses
- Constants and defaults
- Logging helpers
"""

from zklock.core.version import __version__

from zklock.core.exceptions import (
    ZKLockError,
    ConfigurationError,
    LockError,
    AcquisitionFailed,
    LockContended,
    WaitTimeout,
    InvariantViolation,
    AcquireCancelled,
    LockStateError,
    LockLost,
    StoreError,
    NodeExistsError,
    NoNodeError,
    NotEmptyError,
    StoreUnavailableError,
)

from zklock.core.config import LockConfig, StoreConfig

from zklock.core.logging import JSONFormatter, setup_logging, with_log_context

__all__ = [
    "__version__",
    "ZKLockError",
    "ConfigurationError",
    "LockError",
    "AcquisitionFailed",
    "LockContended",
    "WaitTimeout",
    "InvariantViolation",
    "AcquireCancelled",
    "LockStateError",
    "LockLost",
    "StoreError",
    "NodeExistsError",
    "NoNodeError",
    "NotEmptyError",
    "StoreUnavailableError",
    "LockConfig",
    "StoreConfig",
    "JSONFormatter",
    "setup_logging",
    "with_log_context",
]
