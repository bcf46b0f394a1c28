"""
zklock - distributed mutual exclusion on ZooKeeper

Contenders queue up as ephemeral sequential nodes; the lowest rank holds
the lock and everyone else watches their immediate predecessor.
"""

from zklock.core import (
    AcquireCancelled,
    AcquisitionFailed,
    ConfigurationError,
    InvariantViolation,
    LockConfig,
    LockContended,
    LockError,
    LockLost,
    LockStateError,
    StoreConfig,
    StoreError,
    WaitTimeout,
    ZKLockError,
    __version__,
)
from zklock.locks import Lock, LockState, locked
from zklock.store import KazooStore, MemoryEnsemble, MemoryStore, connect_kazoo, create_store

__all__ = [
    "__version__",
    "AcquireCancelled",
    "AcquisitionFailed",
    "ConfigurationError",
    "InvariantViolation",
    "KazooStore",
    "Lock",
    "LockConfig",
    "LockContended",
    "LockError",
    "LockLost",
    "LockState",
    "LockStateError",
    "MemoryEnsemble",
    "MemoryStore",
    "StoreConfig",
    "StoreError",
    "WaitTimeout",
    "ZKLockError",
    "connect_kazoo",
    "create_store",
    "locked",
]
