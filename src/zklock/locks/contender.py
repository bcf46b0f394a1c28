"""Candidate node creation and ranking of the contention queue.

Design principles:
- The store is the source of truth; every evaluation lists the namespace afresh.
- Ranks are compared numerically on the parsed sequence suffix, so ordering
  stays correct even if a store does not zero-pad to a fixed width.
- Candidate payloads are informational only and never decide ownership.
"""

from __future__ import annotations

import json
import logging
import os
import re
import socket
import threading
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any

from zklock.core.config import LockConfig
from zklock.core.constants import SEQUENCE_SEPARATOR
from zklock.core.exceptions import AcquisitionFailed, InvariantViolation, NoNodeError, StoreError
from zklock.store.base import CoordinationStore, join_path


def _utcnow_iso() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class ContenderInfo:
    """Serializable contender metadata stored as the candidate node payload."""

    identifier: str
    host: str
    pid: int
    thread: str
    created_at: str
    version: int = 1

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), sort_keys=True).encode("utf-8")

    @classmethod
    def current(cls, identifier: str | None = None) -> ContenderInfo:
        host = socket.gethostname()
        pid = os.getpid()
        return cls(
            identifier=identifier or f"{host}:{pid}",
            host=host,
            pid=pid,
            thread=threading.current_thread().name,
            created_at=_utcnow_iso(),
        )

    @classmethod
    def from_bytes(cls, payload: bytes) -> ContenderInfo | None:
        try:
            data = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return None
        if not isinstance(data, dict):
            return None
        try:
            return cls(
                identifier=str(data["identifier"]),
                host=str(data.get("host", "")),
                pid=int(data.get("pid", 0)),
                thread=str(data.get("thread", "")),
                created_at=str(data.get("created_at", "")),
                version=int(data.get("version", 1)),
            )
        except (KeyError, TypeError, ValueError):
            return None


@dataclass(frozen=True)
class CandidateNode:
    """A sequential node in the contention queue."""

    full_path: str
    name: str
    sequence: int

    @property
    def rank_key(self) -> tuple[int, str]:
        return (self.sequence, self.name)


@dataclass(frozen=True)
class SiblingSet:
    """Ranked snapshot of the contenders for one lock name."""

    namespace_root: str
    members: tuple[CandidateNode, ...]

    @classmethod
    def from_children(cls, namespace_root: str, lock_name: str, children: list[str]) -> SiblingSet:
        pattern = sequence_pattern(lock_name)
        members = []
        for child in children:
            match = pattern.match(child)
            if match is None:
                # Other lock names (and stray nodes) share the namespace.
                continue
            members.append(CandidateNode(join_path(namespace_root, child), child, int(match.group(1))))
        members.sort(key=lambda node: node.rank_key)
        return cls(namespace_root, tuple(members))

    def __len__(self) -> int:
        return len(self.members)

    def position_of(self, candidate: CandidateNode) -> int | None:
        for index, member in enumerate(self.members):
            if member.name == candidate.name:
                return index
        return None


@dataclass(frozen=True)
class Standing:
    """Where a candidate sits in a :class:`SiblingSet`."""

    candidate: CandidateNode
    siblings: SiblingSet
    position: int

    @property
    def is_owner(self) -> bool:
        return self.position == 0

    @property
    def holder(self) -> CandidateNode:
        return self.siblings.members[0]

    @property
    def predecessor(self) -> CandidateNode | None:
        """Largest-ranked sibling strictly below the candidate."""
        if self.position == 0:
            return None
        return self.siblings.members[self.position - 1]


def sequence_pattern(lock_name: str) -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(lock_name)}{SEQUENCE_SEPARATOR}(\d+)$")


class Contender:
    """Enters the contention queue for one lock and ranks it.

    Args:
        store: Coordination store session
        config: Lock configuration
        identifier: Free-form contender identifier written to the payload
    """

    def __init__(
        self,
        store: CoordinationStore,
        config: LockConfig,
        *,
        identifier: str | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self.store = store
        self.config = config
        self.identifier = identifier
        self.logger = logger or logging.getLogger(__name__)
        self._pattern = sequence_pattern(config.lock_name)

    def enter(self) -> CandidateNode:
        """Create this contender's ephemeral sequential node.

        Raises:
            AcquisitionFailed: If the store refuses or cannot create the node
        """
        prefix = self.config.candidate_prefix
        payload = ContenderInfo.current(self.identifier).to_bytes()
        try:
            full_path = self.store.create(prefix, payload, ephemeral=True, sequential=True)
        except StoreError as e:
            raise AcquisitionFailed(
                "Unable to create candidate node", lock_path=prefix, details=str(e)
            ) from e

        name = full_path.rsplit("/", 1)[1]
        match = self._pattern.match(name)
        if match is None:
            raise InvariantViolation(
                "Store returned a candidate path without a sequence suffix", lock_path=full_path
            )
        candidate = CandidateNode(full_path, name, int(match.group(1)))
        self.logger.debug("Entered contention queue as %s", full_path)
        return candidate

    def snapshot(self) -> SiblingSet:
        """List the namespace and rank the contenders of this lock."""
        children = self.store.get_children(self.config.namespace_root)
        return SiblingSet.from_children(self.config.namespace_root, self.config.lock_name, children)

    def evaluate(self, candidate: CandidateNode) -> Standing:
        """Rank ``candidate`` against a fresh snapshot.

        Raises:
            InvariantViolation: If the candidate is missing from the snapshot
        """
        try:
            siblings = self.snapshot()
        except NoNodeError as e:
            raise InvariantViolation(
                "Namespace vanished while contending", lock_path=candidate.full_path, details=str(e)
            ) from e

        position = siblings.position_of(candidate)
        if position is None:
            raise InvariantViolation(
                "Candidate node is missing from the contention queue",
                lock_path=candidate.full_path,
                details=f"{len(siblings)} sibling(s) listed",
            )
        standing = Standing(candidate, siblings, position)
        self.logger.debug(
            "Evaluated %s: position %d of %d", candidate.name, position, len(siblings)
        )
        return standing

    def withdraw(self, candidate: CandidateNode) -> bool:
        """Delete ``candidate``; returns False if it was already gone."""
        try:
            self.store.delete(candidate.full_path)
        except NoNodeError:
            return False
        return True

    def describe_queue(self) -> list[tuple[CandidateNode, ContenderInfo | None]]:
        """Ranked contenders with their payload metadata, for diagnostics."""
        try:
            siblings = self.snapshot()
        except NoNodeError:
            return []
        described = []
        for member in siblings.members:
            try:
                info = ContenderInfo.from_bytes(self.store.get_data(member.full_path))
            except NoNodeError:
                # Left the queue between listing and reading.
                continue
            described.append((member, info))
        return described
