"""Coordination store abstraction.

Design principles:
- The store is the single source of truth; nothing here caches node state.
- All mutation goes through the store's atomic create/delete primitives.
- Watches are single-fire; a fired or cancelled watch never fires again.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class WatchKind(Enum):
    """What caused an existence watch to fire."""

    CREATED = "created"
    DELETED = "deleted"
    CHANGED = "changed"
    SESSION = "session"  # connection/session event unrelated to the node


@dataclass(frozen=True)
class WatchEvent:
    """Notification delivered to an existence-watch callback."""

    kind: WatchKind
    path: str


WatchCallback = Callable[[WatchEvent], None]


class StoreWatch:
    """Handle for one registered existence watch.

    Attributes:
        path: Watched node path
        exists: Whether the node existed when the watch was registered
    """

    def __init__(
        self,
        path: str,
        callback: WatchCallback,
        exists: bool = False,
        on_cancel: Callable[[StoreWatch], None] | None = None,
    ):
        self.path = path
        self.exists = exists
        self._callback = callback
        self._on_cancel = on_cancel
        self._lock = threading.Lock()
        self._done = False

    @property
    def active(self) -> bool:
        with self._lock:
            return not self._done

    def fire(self, event: WatchEvent) -> bool:
        """Deliver ``event`` unless the watch already fired or was cancelled."""
        with self._lock:
            if self._done:
                return False
            self._done = True
        self._callback(event)
        return True

    def cancel(self) -> None:
        """Disarm the watch; a later notification is dropped."""
        with self._lock:
            if self._done:
                return
            self._done = True
        if self._on_cancel is not None:
            self._on_cancel(self)


class CoordinationStore(Protocol):
    """Primitives the lock protocol needs from a ZooKeeper-like store."""

    name: str

    def create(self, path: str, data: bytes = b"", *, ephemeral: bool = False, sequential: bool = False) -> str:
        """Create a node and return its actual path (with sequence suffix)."""

    def exists(self, path: str) -> bool:
        """Return whether the node exists."""

    def delete(self, path: str) -> None:
        """Delete a node; raises NoNodeError when absent."""

    def get_children(self, path: str) -> list[str]:
        """Return the child names of a node."""

    def get_data(self, path: str) -> bytes:
        """Return the payload of a node."""

    def watch_exists(self, path: str, callback: WatchCallback) -> StoreWatch:
        """Register a single-fire existence watch on ``path``."""

    def close(self) -> None:
        """End the session; ephemeral nodes created through it disappear."""


def parent_path(path: str) -> str:
    parent = path.rsplit("/", 1)[0]
    return parent or "/"


def join_path(parent: str, child: str) -> str:
    if parent == "/":
        return f"/{child}"
    return f"{parent}/{child}"
