"""ZooKeeper store adapter backed by kazoo.

The adapter translates kazoo's exceptions into the zklock store errors and
kazoo's watch and connection-state notifications into :class:`WatchEvent`.
Kazoo has no way to remove a registered exists-watch, so cancelling a
:class:`StoreWatch` only disarms it: the late notification is dropped. Every
registration hands kazoo the same dispatcher, so a path never holds more than
one kazoo watcher per store however many waits time out on it.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any, TypeVar

from kazoo.client import KazooClient
from kazoo.exceptions import (
    ConnectionLoss,
    KazooException,
    NodeExistsError as KazooNodeExistsError,
    NoNodeError as KazooNoNodeError,
    NotEmptyError as KazooNotEmptyError,
    SessionExpiredError,
)
from kazoo.handlers.threading import KazooTimeoutError
from kazoo.protocol.states import EventType, KazooState, WatchedEvent

from zklock.core.config import StoreConfig
from zklock.core.exceptions import (
    NodeExistsError,
    NoNodeError,
    NotEmptyError,
    StoreError,
    StoreUnavailableError,
)
from zklock.store.base import StoreWatch, WatchCallback, WatchEvent, WatchKind

logger = logging.getLogger(__name__)

T = TypeVar("T")

_EVENT_KINDS = {
    EventType.CREATED: WatchKind.CREATED,
    EventType.DELETED: WatchKind.DELETED,
    EventType.CHANGED: WatchKind.CHANGED,
}


def _translate(operation: str, path: str, error: Exception) -> StoreError:
    """Map a kazoo exception onto the zklock store error hierarchy."""
    details = f"{type(error).__name__} during {operation}"
    if isinstance(error, KazooNodeExistsError):
        return NodeExistsError("Node already exists", path=path, details=details, original_error=error)
    if isinstance(error, KazooNoNodeError):
        return NoNodeError("Node does not exist", path=path, details=details, original_error=error)
    if isinstance(error, KazooNotEmptyError):
        return NotEmptyError("Node has children", path=path, details=details, original_error=error)
    if isinstance(error, (ConnectionLoss, SessionExpiredError, KazooTimeoutError)):
        return StoreUnavailableError("ZooKeeper unavailable", path=path, details=details, original_error=error)
    return StoreError(f"ZooKeeper {operation} failed", path=path, details=details, original_error=error)


class KazooStore:
    """:class:`CoordinationStore` implementation over a :class:`KazooClient`.

    Args:
        client: A kazoo client; it must be started before the store is used
        owns_client: Stop and close the client in :meth:`close`
    """

    name = "kazoo"

    def __init__(self, client: KazooClient, *, owns_client: bool = False):
        self.client = client
        self.owns_client = owns_client
        self._armed: dict[str, set[StoreWatch]] = {}
        self._armed_lock = threading.Lock()
        self.client.add_listener(self._on_state_change)

    def _call(self, operation: str, path: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return func(*args, **kwargs)
        except (KazooException, KazooTimeoutError) as e:
            raise _translate(operation, path, e) from e

    def create(self, path: str, data: bytes = b"", *, ephemeral: bool = False, sequential: bool = False) -> str:
        return self._call(
            "create", path, self.client.create, path, value=data, ephemeral=ephemeral, sequence=sequential
        )

    def exists(self, path: str) -> bool:
        return self._call("exists", path, self.client.exists, path) is not None

    def delete(self, path: str) -> None:
        self._call("delete", path, self.client.delete, path)

    def get_children(self, path: str) -> list[str]:
        return list(self._call("get_children", path, self.client.get_children, path))

    def get_data(self, path: str) -> bytes:
        data, _stat = self._call("get", path, self.client.get, path)
        return data or b""

    def watch_exists(self, path: str, callback: WatchCallback) -> StoreWatch:
        watch = StoreWatch(path, callback, on_cancel=self._disarm)
        with self._armed_lock:
            self._armed.setdefault(path, set()).add(watch)

        # Kazoo keeps data watchers in a per-path set, so passing the same
        # bound method every time registers at most one watcher per path.
        try:
            stat = self._call("exists", path, self.client.exists, path, watch=self._dispatch)
        except StoreError:
            watch.cancel()
            raise
        watch.exists = stat is not None
        return watch

    def _dispatch(self, event: WatchedEvent) -> None:
        with self._armed_lock:
            pending = self._armed.pop(event.path, set())
        kind = _EVENT_KINDS.get(event.type, WatchKind.SESSION)
        for watch in pending:
            watch.fire(WatchEvent(kind, event.path))

    def _disarm(self, watch: StoreWatch) -> None:
        with self._armed_lock:
            armed = self._armed.get(watch.path)
            if armed is None:
                return
            armed.discard(watch)
            if not armed:
                del self._armed[watch.path]

    def _on_state_change(self, state: KazooState) -> None:
        # Runs on kazoo's connection thread; callbacks only signal waiters.
        if state not in (KazooState.SUSPENDED, KazooState.LOST):
            return
        with self._armed_lock:
            pending = [watch for armed in self._armed.values() for watch in armed]
            self._armed.clear()
        if pending:
            logger.debug("Connection %s; waking %d watcher(s)", state, len(pending))
        for watch in pending:
            watch.fire(WatchEvent(WatchKind.SESSION, watch.path))

    def close(self) -> None:
        self.client.remove_listener(self._on_state_change)
        if not self.owns_client:
            return
        try:
            self.client.stop()
        finally:
            self.client.close()

    def __enter__(self) -> KazooStore:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def connect_kazoo(config: StoreConfig | None = None) -> KazooStore:
    """Create, start and wrap a kazoo client.

    Raises:
        StoreUnavailableError: If the ensemble cannot be reached within ``connect_timeout``
    """
    config = config or StoreConfig.from_env()
    client = KazooClient(hosts=config.hosts, timeout=config.session_timeout, read_only=config.read_only)
    logger.debug("Connecting to ZooKeeper at %s", config.hosts)
    try:
        client.start(timeout=config.connect_timeout)
    except KazooTimeoutError as e:
        client.close()
        raise StoreUnavailableError(
            "Could not connect to ZooKeeper",
            details=f"{config.hosts} within {config.connect_timeout}s",
            original_error=e,
        ) from e
    logger.info("Connected to ZooKeeper at %s", config.hosts)
    return KazooStore(client, owns_client=True)
