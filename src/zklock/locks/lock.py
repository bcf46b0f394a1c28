"""Public lock handle orchestrating namespace, contender and wait gate."""

from __future__ import annotations

import logging
import threading
import time
import types
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from typing import Any

from zklock.core.config import LockConfig
from zklock.core.exceptions import (
    AcquireCancelled,
    AcquisitionFailed,
    ConfigurationError,
    LockContended,
    LockLost,
    LockStateError,
    StoreError,
    WaitTimeout,
)
from zklock.core.logging import with_log_context
from zklock.locks.contender import CandidateNode, Contender, ContenderInfo
from zklock.locks.gate import WaitGate
from zklock.locks.namespace import ensure_path
from zklock.store.base import CoordinationStore


class LockState(Enum):
    """Lifecycle of a :class:`Lock` handle."""

    UNACQUIRED = "unacquired"
    ACQUIRING = "acquiring"
    HELD = "held"
    RELEASED = "released"


class Lock:
    """Mutual-exclusion lock whose state lives in a coordination store.

    The lock is only held while this handle's candidate node is the
    lowest-ranked contender for ``lock_name`` under ``namespace_root``.
    The store session owns the node's lifetime: if the session ends, the node
    and therefore the lock go away without any action from this handle.

    Use it as a context manager so release runs on every exit path::

        with Lock(store, "nightly-report"):
            ...

    Args:
        store: Coordination store session (injected, never global)
        lock_name: Lock token; mutually exclusive with ``config``
        config: Full :class:`LockConfig`
        identifier: Free-form contender id stored in the candidate payload
        logger: Logger to use instead of the module logger
        **options: Remaining :class:`LockConfig` fields when ``lock_name`` is given
    """

    def __init__(
        self,
        store: CoordinationStore,
        lock_name: str | None = None,
        *,
        config: LockConfig | None = None,
        identifier: str | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        **options: Any,
    ):
        if config is None:
            if lock_name is None:
                raise ConfigurationError("Either lock_name or config is required", field="lock_name")
            try:
                config = LockConfig(lock_name=lock_name, **options)
            except TypeError as e:
                raise ConfigurationError("Unknown lock option", details=str(e)) from e
        elif lock_name is not None or options:
            raise ConfigurationError("Pass either config or lock_name/options, not both")

        self.store = store
        self.config = config
        self.logger = with_log_context(logger or logging.getLogger(__name__), lock=self.path)
        self.contender = Contender(store, config, identifier=identifier, logger=self.logger)
        self.gate = WaitGate(store, logger=self.logger)

        self._state_lock = threading.RLock()
        self._state = LockState.UNACQUIRED
        self._candidate: CandidateNode | None = None
        self._cancel = threading.Event()
        self._idle = threading.Event()
        self._idle.set()

    @property
    def path(self) -> str:
        return f"{self.config.namespace_root}/{self.config.lock_name}"

    @property
    def state(self) -> LockState:
        with self._state_lock:
            return self._state

    @property
    def candidate(self) -> CandidateNode | None:
        with self._state_lock:
            return self._candidate

    @property
    def held(self) -> bool:
        """Whether this handle believes it holds the lock (no store round-trip)."""
        return self.state is LockState.HELD

    def acquire(self, blocking: bool | None = None, timeout_ms: int | None = None) -> bool:
        """Acquire the lock.

        Args:
            blocking: Override ``config.non_blocking`` for this attempt
            timeout_ms: Override ``config.wait_timeout_ms`` for this attempt

        Returns:
            True once the lock is held. Calling it while already held returns
            True immediately; there is no recursion count.

        The timeout is one deadline for the whole attempt, checked before each
        wait on a predecessor. Store calls themselves are not interrupted: while
        a kazoo connection is suspended they queue until reconnect or session
        loss, so an attempt can overrun the deadline by up to the session
        timeout before :class:`WaitTimeout` is raised.

        Raises:
            AcquisitionFailed: Candidate or namespace node could not be created
            LockContended: Non-blocking attempt found a lower-ranked contender
            WaitTimeout: Blocking attempt ran out of time
            AcquireCancelled: :meth:`cancel` or :meth:`release` was called meanwhile
            InvariantViolation: The candidate vanished from the queue
            LockStateError: Another thread is already acquiring with this handle
        """
        if blocking is None:
            blocking = not self.config.non_blocking
        if timeout_ms is None:
            timeout_ms = self.config.wait_timeout_ms
            timeout = self.config.wait_timeout
        elif timeout_ms < 0:
            raise ConfigurationError("timeout_ms must be non-negative", field="timeout_ms", details=str(timeout_ms))
        else:
            timeout = timeout_ms / 1000.0

        with self._state_lock:
            if self._state is LockState.HELD:
                return True
            if self._state is LockState.ACQUIRING:
                raise LockStateError("Lock is already being acquired by this handle", lock_path=self.path)
            self._state = LockState.ACQUIRING
            self._cancel.clear()
            self._idle.clear()

        deadline = time.monotonic() + timeout
        try:
            try:
                self._contend(blocking, deadline, timeout_ms)
                with self._state_lock:
                    if self._cancel.is_set():
                        raise AcquireCancelled("Acquire cancelled", lock_path=self.path)
                    self._state = LockState.HELD
                    candidate = self._candidate
            except BaseException:
                self._abandon()
                raise
        finally:
            self._idle.set()

        name = candidate.name if candidate else None
        self.logger.info("Acquired lock %s as %s", self.path, name, extra={"candidate": name})
        return True

    def try_acquire(self) -> bool:
        """Non-blocking acquire that returns False instead of raising LockContended."""
        try:
            return self.acquire(blocking=False)
        except LockContended as e:
            self.logger.debug("Lock %s is contended (%s)", self.path, e.holder)
            return False

    def _contend(self, blocking: bool, deadline: float, timeout_ms: int) -> None:
        if self.config.create_namespace:
            try:
                ensure_path(self.store, self.config.namespace_root)
            except StoreError as e:
                raise AcquisitionFailed(
                    "Unable to create lock namespace", lock_path=self.config.namespace_root, details=str(e)
                ) from e

        candidate = self.contender.enter()
        with self._state_lock:
            self._candidate = candidate

        while True:
            if self._cancel.is_set():
                raise AcquireCancelled("Acquire cancelled", lock_path=self.path)

            standing = self.contender.evaluate(candidate)
            if standing.is_owner:
                return
            if not blocking:
                raise LockContended(self.path, holder=standing.holder.name)

            predecessor = standing.predecessor.full_path
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise WaitTimeout(self.path, timeout_ms, predecessor=predecessor)
            try:
                self.gate.wait(predecessor, remaining, cancel_event=self._cancel)
            except WaitTimeout as e:
                raise WaitTimeout(self.path, timeout_ms, predecessor=predecessor) from e

    def _abandon(self) -> None:
        """Withdraw the candidate of a failed attempt, best effort."""
        with self._state_lock:
            candidate = self._candidate
            self._candidate = None
            self._state = LockState.UNACQUIRED
        if candidate is None:
            return
        try:
            self.contender.withdraw(candidate)
        except StoreError as e:
            # The store session will still remove the ephemeral node eventually.
            self.logger.warning("Could not remove candidate %s after failed acquire: %s", candidate.full_path, e)
        else:
            self.logger.debug("Withdrew candidate %s", candidate.full_path)

    def cancel(self) -> None:
        """Cancel an in-flight :meth:`acquire` running in another thread."""
        with self._state_lock:
            if self._state is not LockState.ACQUIRING:
                return
            self._cancel.set()
        self.gate.interrupt()

    def release(self) -> None:
        """Release the lock.

        Idempotent: releasing an unacquired or already released lock does
        nothing. Releasing while another thread is acquiring cancels that
        attempt and waits until it has withdrawn its candidate.
        """
        with self._state_lock:
            acquiring = self._state is LockState.ACQUIRING
        if acquiring:
            self.cancel()
            self._idle.wait()

        with self._state_lock:
            if self._state is not LockState.HELD or self._candidate is None:
                return
            candidate = self._candidate
            self._candidate = None

        try:
            removed = self.contender.withdraw(candidate)
        except StoreError:
            with self._state_lock:
                self._candidate = candidate
            raise

        with self._state_lock:
            self._state = LockState.RELEASED
        if removed:
            self.logger.info("Released lock %s (%s)", self.path, candidate.name, extra={"candidate": candidate.name})
        else:
            self.logger.warning("Candidate %s was already gone on release; session may have expired", candidate.name)

    unlock = release

    def is_held(self) -> bool:
        """Check with the store that the candidate node still exists."""
        with self._state_lock:
            if self._state is not LockState.HELD or self._candidate is None:
                return False
            candidate = self._candidate
        return self.store.exists(candidate.full_path)

    def ensure_held(self) -> None:
        """Raise unless the lock is held and its node still exists.

        Raises:
            LockStateError: The handle does not hold the lock
            LockLost: The candidate node is gone (session expired or deleted)
        """
        with self._state_lock:
            candidate = self._candidate
            if self._state is not LockState.HELD or candidate is None:
                raise LockStateError(f"Lock is {self._state.value}, not held", lock_path=self.path)
        if self.store.exists(candidate.full_path):
            return
        with self._state_lock:
            if self._candidate is candidate:
                self._candidate = None
                self._state = LockState.RELEASED
        self.logger.error("Lost lock %s: candidate %s no longer exists", self.path, candidate.name)
        raise LockLost("Lock node no longer exists", lock_path=self.path, details=candidate.full_path)

    def contenders(self) -> list[tuple[CandidateNode, ContenderInfo | None]]:
        """Ranked view of the contention queue, holder first."""
        return self.contender.describe_queue()

    def __enter__(self) -> Lock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"<Lock {self.path} {self.state.value}>"


@contextmanager
def locked(
    store: CoordinationStore,
    lock_name: str,
    *,
    timeout_ms: int | None = None,
    **options: Any,
) -> Iterator[Lock]:
    """Hold ``lock_name`` for the duration of the ``with`` block."""
    lock = Lock(store, lock_name, **options)
    lock.acquire(timeout_ms=timeout_ms)
    try:
        yield lock
    finally:
        lock.release()
