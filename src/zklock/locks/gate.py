"""Event-driven wait for a predecessor node to go away."""

from __future__ import annotations

import logging
import threading

from zklock.core.exceptions import AcquireCancelled, LockStateError, WaitTimeout
from zklock.store.base import CoordinationStore, WatchEvent


class WaitGate:
    """Blocks the caller until a watched node changes, a deadline passes, or a cancel arrives.

    Exactly one existence watch is registered per :meth:`wait` call and the
    call does not return until that watch fired or was disarmed. Suspension
    happens on a per-call :class:`threading.Event`, so waits on a shared store
    session never block each other.
    """

    def __init__(self, store: CoordinationStore, logger: logging.Logger | logging.LoggerAdapter | None = None):
        self.store = store
        self.logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._pending: threading.Event | None = None

    @property
    def waiting(self) -> bool:
        with self._lock:
            return self._pending is not None

    def wait(
        self,
        path: str,
        timeout: float | None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> WatchEvent | None:
        """Suspend until ``path`` changes.

        Returns the watch event that woke the gate, or None when the node was
        already gone at registration. Any event kind returns normally; the
        caller re-evaluates the full queue either way.

        Raises:
            WaitTimeout: If ``timeout`` seconds pass without a notification
            AcquireCancelled: If ``cancel_event`` is set (see :meth:`interrupt`)
        """
        fired = threading.Event()
        received: list[WatchEvent] = []

        def _on_event(event: WatchEvent) -> None:
            received.append(event)
            fired.set()

        with self._lock:
            if self._pending is not None:
                raise LockStateError("A wait is already in progress on this gate", lock_path=path)
            self._pending = fired

        try:
            watch = self.store.watch_exists(path, _on_event)
            try:
                if not watch.exists:
                    self.logger.debug("Predecessor %s already gone", path)
                    return None
                if cancel_event is not None and cancel_event.is_set():
                    raise AcquireCancelled("Acquire cancelled", lock_path=path)

                self.logger.debug("Waiting on %s (timeout=%s)", path, timeout)
                if not fired.wait(timeout):
                    timeout_ms = int((timeout or 0) * 1000)
                    raise WaitTimeout(path, timeout_ms, predecessor=path)
                if cancel_event is not None and cancel_event.is_set():
                    raise AcquireCancelled("Acquire cancelled", lock_path=path)
            finally:
                # No-op once fired; otherwise drops the watch before returning.
                watch.cancel()
        finally:
            with self._lock:
                self._pending = None

        if not received:
            return None
        event = received[0]
        self.logger.debug("Woke on %s event for %s", event.kind.value, path)
        return event

    def interrupt(self) -> None:
        """Wake a pending :meth:`wait`; it raises if its cancel event is set."""
        with self._lock:
            if self._pending is not None:
                self._pending.set()
