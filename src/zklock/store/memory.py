"""In-process coordination store.

A :class:`MemoryEnsemble` plays the role of a ZooKeeper ensemble: it owns the
node tree. Every :class:`MemoryStore` opened on it is one client session, so
ephemeral nodes and watches behave per session the way they do against a real
server. Sequence suffixes come from the parent's child-version counter and are
zero-padded to 10 digits, matching ZooKeeper.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field

from zklock.core.constants import SEQUENCE_WIDTH
from zklock.core.exceptions import (
    NodeExistsError,
    NoNodeError,
    NotEmptyError,
    StoreError,
    StoreUnavailableError,
)
from zklock.store.base import StoreWatch, WatchCallback, WatchEvent, WatchKind, parent_path

logger = logging.getLogger(__name__)


@dataclass
class _Node:
    data: bytes
    owner: int | None = None  # session id for ephemeral nodes
    children: set[str] = field(default_factory=set)
    cversion: int = 0


class MemoryEnsemble:
    """Shared node tree for any number of :class:`MemoryStore` sessions."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._nodes: dict[str, _Node] = {"/": _Node(b"")}
        self._watches: dict[str, list[tuple[int, StoreWatch]]] = {}
        self._session_ids = itertools.count(1)

    def connect(self) -> MemoryStore:
        """Open a new session."""
        return MemoryStore(self)

    def _new_session_id(self) -> int:
        with self._lock:
            return next(self._session_ids)

    def paths(self) -> list[str]:
        """All node paths currently in the tree, sorted."""
        with self._lock:
            return sorted(self._nodes)

    # Operations below take the calling session id; MemoryStore guards them.

    def _create(self, session_id: int, path: str, data: bytes, ephemeral: bool, sequential: bool) -> str:
        _validate_path(path, allow_trailing_slash=sequential)
        with self._lock:
            parent = parent_path(path)
            parent_node = self._nodes.get(parent)
            if parent_node is None:
                raise NoNodeError("Parent node does not exist", path=path, details=parent)
            if parent_node.owner is not None:
                raise StoreError("Ephemeral nodes may not have children", path=path)

            if sequential:
                path = f"{path}{parent_node.cversion:0{SEQUENCE_WIDTH}d}"
            if path in self._nodes:
                raise NodeExistsError("Node already exists", path=path)

            self._nodes[path] = _Node(bytes(data), owner=session_id if ephemeral else None)
            parent_node.children.add(path.rsplit("/", 1)[1])
            parent_node.cversion += 1
            fired = self._pop_watches(path)

        _deliver(fired, WatchEvent(WatchKind.CREATED, path))
        return path

    def _exists(self, path: str) -> bool:
        with self._lock:
            return path in self._nodes

    def _delete(self, path: str) -> None:
        _validate_path(path)
        if path == "/":
            raise StoreError("The root node cannot be deleted", path=path)
        with self._lock:
            node = self._nodes.get(path)
            if node is None:
                raise NoNodeError("Node does not exist", path=path)
            if node.children:
                raise NotEmptyError("Node has children", path=path)
            self._remove_locked(path)
            fired = self._pop_watches(path)
        _deliver(fired, WatchEvent(WatchKind.DELETED, path))

    def _get_children(self, path: str) -> list[str]:
        with self._lock:
            node = self._nodes.get(path)
            if node is None:
                raise NoNodeError("Node does not exist", path=path)
            return list(node.children)

    def _get_data(self, path: str) -> bytes:
        with self._lock:
            node = self._nodes.get(path)
            if node is None:
                raise NoNodeError("Node does not exist", path=path)
            return node.data

    def _watch_exists(self, session_id: int, path: str, callback: WatchCallback) -> StoreWatch:
        _validate_path(path)
        with self._lock:
            watch = StoreWatch(path, callback, exists=path in self._nodes, on_cancel=self._unregister_watch)
            self._watches.setdefault(path, []).append((session_id, watch))
            return watch

    def _unregister_watch(self, watch: StoreWatch) -> None:
        with self._lock:
            registered = self._watches.get(watch.path)
            if registered is None:
                return
            remaining = [(sid, w) for sid, w in registered if w is not watch]
            if remaining:
                self._watches[watch.path] = remaining
            else:
                del self._watches[watch.path]

    def _end_session(self, session_id: int) -> None:
        """Remove the session's ephemeral nodes and drop its watches."""
        deleted: list[tuple[str, list[StoreWatch]]] = []
        with self._lock:
            own_watches = []
            for path in list(self._watches):
                kept = []
                for sid, watch in self._watches[path]:
                    (own_watches if sid == session_id else kept).append((sid, watch))
                if kept:
                    self._watches[path] = kept
                else:
                    del self._watches[path]

            ephemerals = [path for path, node in self._nodes.items() if node.owner == session_id]
            for path in sorted(ephemerals, reverse=True):
                self._remove_locked(path)
                deleted.append((path, self._pop_watches(path)))

        for path, fired in deleted:
            _deliver(fired, WatchEvent(WatchKind.DELETED, path))
        _deliver([w for _, w in own_watches], None)
        if ephemerals:
            logger.debug("Session %s ended; removed %d ephemeral node(s)", session_id, len(ephemerals))

    def _interrupt_session(self, session_id: int) -> int:
        """Fire every pending watch of the session with a SESSION event."""
        with self._lock:
            pending = []
            for path in list(self._watches):
                kept = []
                for sid, watch in self._watches[path]:
                    (pending if sid == session_id else kept).append(watch)
                if kept:
                    self._watches[path] = kept
                else:
                    del self._watches[path]
        _deliver(pending, None)
        return len(pending)

    def _remove_locked(self, path: str) -> None:
        del self._nodes[path]
        parent_node = self._nodes[parent_path(path)]
        parent_node.children.discard(path.rsplit("/", 1)[1])
        parent_node.cversion += 1

    def _pop_watches(self, path: str) -> list[StoreWatch]:
        return [watch for _, watch in self._watches.pop(path, [])]


def _deliver(watches: list[StoreWatch], event: WatchEvent | None) -> None:
    """Fire watches outside the tree lock; ``None`` means a SESSION event."""
    for watch in watches:
        watch.fire(event if event is not None else WatchEvent(WatchKind.SESSION, watch.path))


def _validate_path(path: str, *, allow_trailing_slash: bool = False) -> None:
    if not isinstance(path, str) or not path.startswith("/"):
        raise StoreError("Path must start with '/'", path=str(path))
    if path == "/":
        return
    body = path[1:]
    if allow_trailing_slash and body.endswith("/"):
        body = body[:-1]
    if "" in body.split("/"):
        raise StoreError("Path contains an empty node name", path=path)


class MemoryStore:
    """One client session on a :class:`MemoryEnsemble`."""

    name = "memory"

    def __init__(self, ensemble: MemoryEnsemble | None = None):
        self.ensemble = ensemble if ensemble is not None else MemoryEnsemble()
        self.session_id = self.ensemble._new_session_id()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def _check_open(self, path: str) -> None:
        if self._closed.is_set():
            raise StoreUnavailableError("Session is closed", path=path, details=f"session {self.session_id}")

    def create(self, path: str, data: bytes = b"", *, ephemeral: bool = False, sequential: bool = False) -> str:
        self._check_open(path)
        return self.ensemble._create(self.session_id, path, data, ephemeral, sequential)

    def exists(self, path: str) -> bool:
        self._check_open(path)
        return self.ensemble._exists(path)

    def delete(self, path: str) -> None:
        self._check_open(path)
        self.ensemble._delete(path)

    def get_children(self, path: str) -> list[str]:
        self._check_open(path)
        return self.ensemble._get_children(path)

    def get_data(self, path: str) -> bytes:
        self._check_open(path)
        return self.ensemble._get_data(path)

    def watch_exists(self, path: str, callback: WatchCallback) -> StoreWatch:
        self._check_open(path)
        return self.ensemble._watch_exists(self.session_id, path, callback)

    def simulate_disconnect(self) -> int:
        """Deliver a SESSION event to every pending watch of this session.

        Models a connection blip that ZooKeeper reports to watchers without
        ending the session. Returns the number of watches notified.
        """
        self._check_open("/")
        return self.ensemble._interrupt_session(self.session_id)

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        self.ensemble._end_session(self.session_id)

    expire = close

    def __enter__(self) -> MemoryStore:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
