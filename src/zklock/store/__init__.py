"""Coordination store adapters.

``create_store`` picks a backend by name or from the environment so callers
(and the CLI) use one entry point regardless of where the tree lives.
"""

from __future__ import annotations

import logging
import os

from zklock.core.config import StoreConfig
from zklock.core.constants import DEFAULT_STORE_BACKEND, ENV_STORE_BACKEND
from zklock.store.base import CoordinationStore, StoreWatch, WatchEvent, WatchKind
from zklock.store.kazoo import KazooStore, connect_kazoo
from zklock.store.memory import MemoryEnsemble, MemoryStore

__all__ = [
    "CoordinationStore",
    "KazooStore",
    "MemoryEnsemble",
    "MemoryStore",
    "StoreWatch",
    "WatchEvent",
    "WatchKind",
    "connect_kazoo",
    "create_store",
]


def create_store(
    backend_name: str | None = None,
    config: StoreConfig | None = None,
    *,
    ensemble: MemoryEnsemble | None = None,
    logger: logging.Logger | None = None,
) -> CoordinationStore:
    """Create a store session from an explicit backend name or environment override."""
    log = logger or logging.getLogger(__name__)
    requested = (backend_name or os.environ.get(ENV_STORE_BACKEND, DEFAULT_STORE_BACKEND)).strip().lower()

    if requested == "memory":
        return MemoryStore(ensemble)

    if requested != "kazoo":
        log.warning("Unknown store backend '%s'; falling back to %s", requested, DEFAULT_STORE_BACKEND)
    return connect_kazoo(config)
