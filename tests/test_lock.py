"""Tests for the public lock handle."""

from __future__ import annotations

import threading
import time

import pytest
from conftest import start_thread, wait_until

from zklock import locked
from zklock.core.config import LockConfig
from zklock.core.exceptions import (
    AcquireCancelled,
    AcquisitionFailed,
    ConfigurationError,
    InvariantViolation,
    LockContended,
    LockLost,
    LockStateError,
    StoreUnavailableError,
    WaitTimeout,
)
from zklock.locks.lock import Lock, LockState
from zklock.store.memory import MemoryStore


def _lock_nodes(store: MemoryStore, root: str = "/lock") -> list[str]:
    if not store.exists(root):
        return []
    return sorted(store.get_children(root))


def _run_acquire(lock: Lock, outcome: dict, **kwargs) -> threading.Thread:
    def _target() -> None:
        try:
            outcome["result"] = lock.acquire(**kwargs)
        except BaseException as e:
            outcome["error"] = e

    return start_thread(_target)


class TestAcquireRelease:
    """Basic lifecycle of a single handle"""

    def test_acquire_creates_candidate_and_release_removes_it(self, store: MemoryStore) -> None:
        lock = Lock(store, "jobs")
        assert lock.state is LockState.UNACQUIRED

        assert lock.acquire() is True
        assert lock.state is LockState.HELD
        assert lock.candidate is not None
        assert _lock_nodes(store) == [lock.candidate.name]
        assert lock.is_held()

        lock.release()
        assert lock.state is LockState.RELEASED
        assert lock.candidate is None
        assert _lock_nodes(store) == []

    def test_namespace_chain_is_created(self, store: MemoryStore) -> None:
        with Lock(store, "jobs", namespace_root="/apps/batch/locks/") as lock:
            assert lock.path == "/apps/batch/locks/jobs"
            assert store.exists("/apps/batch/locks")
        # Namespace nodes outlive the lock.
        assert store.exists("/apps/batch/locks")

    def test_missing_namespace_without_creation_fails(self, store: MemoryStore) -> None:
        lock = Lock(store, "jobs", create_namespace=False)
        with pytest.raises(AcquisitionFailed):
            lock.acquire()
        assert lock.state is LockState.UNACQUIRED

    def test_release_is_idempotent(self, store: MemoryStore) -> None:
        lock = Lock(store, "jobs")
        lock.release()
        lock.unlock()
        assert lock.state is LockState.UNACQUIRED

        lock.acquire()
        lock.release()
        lock.release()
        assert lock.state is LockState.RELEASED

    def test_acquire_while_held_does_not_create_second_node(self, store: MemoryStore) -> None:
        lock = Lock(store, "jobs")
        lock.acquire()
        first = lock.candidate

        assert lock.acquire() is True
        assert lock.candidate == first
        assert len(_lock_nodes(store)) == 1
        lock.release()

    def test_reacquire_after_release_uses_new_candidate(self, store: MemoryStore) -> None:
        lock = Lock(store, "jobs")
        lock.acquire()
        first = lock.candidate
        lock.release()

        lock.acquire()
        assert lock.candidate is not None
        assert lock.candidate.sequence > first.sequence
        lock.release()

    def test_context_manager_releases_on_error(self, store: MemoryStore) -> None:
        lock = Lock(store, "jobs")
        with pytest.raises(RuntimeError):
            with lock:
                assert lock.held
                raise RuntimeError("boom")
        assert lock.state is LockState.RELEASED
        assert _lock_nodes(store) == []

    def test_locked_helper(self, store: MemoryStore) -> None:
        with locked(store, "jobs", namespace_root="/helpers") as lock:
            assert lock.held
            assert _lock_nodes(store, "/helpers") == [lock.candidate.name]
        assert _lock_nodes(store, "/helpers") == []

    def test_release_store_error_keeps_lock_held(self, store: MemoryStore, monkeypatch: pytest.MonkeyPatch) -> None:
        lock = Lock(store, "jobs")
        lock.acquire()
        original_delete = store.delete

        def _unavailable(path: str) -> None:
            raise StoreUnavailableError("connection lost", path=path)

        monkeypatch.setattr(store, "delete", _unavailable)
        with pytest.raises(StoreUnavailableError):
            lock.release()
        assert lock.state is LockState.HELD

        monkeypatch.setattr(store, "delete", original_delete)
        lock.release()
        assert _lock_nodes(store) == []


class TestConfiguration:
    """Validation happens before any store interaction"""

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"namespace_root": "lock"},
            {"namespace_root": "/"},
            {"wait_timeout_ms": -1},
        ],
    )
    def test_invalid_options(self, store: MemoryStore, kwargs: dict) -> None:
        with pytest.raises(ConfigurationError):
            Lock(store, "jobs", **kwargs)
        assert store.ensemble.paths() == ["/"]

    def test_lock_name_with_slash(self, store: MemoryStore) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            Lock(store, "a/b")
        assert exc_info.value.field == "lock_name"

    def test_unknown_option(self, store: MemoryStore) -> None:
        with pytest.raises(ConfigurationError):
            Lock(store, "jobs", recursive=True)

    def test_config_and_name_are_exclusive(self, store: MemoryStore) -> None:
        with pytest.raises(ConfigurationError):
            Lock(store, "jobs", config=LockConfig(lock_name="jobs"))
        with pytest.raises(ConfigurationError):
            Lock(store)

    def test_negative_timeout_override(self, store: MemoryStore) -> None:
        with pytest.raises(ConfigurationError):
            Lock(store, "jobs").acquire(timeout_ms=-5)


class TestContention:
    """Several handles on separate sessions"""

    def test_non_blocking_contended_leaves_no_candidate(self, session_factory) -> None:
        holder = Lock(session_factory(), "jobs")
        holder.acquire()
        contender_store = session_factory()
        contender = Lock(contender_store, "jobs", non_blocking=True)

        with pytest.raises(LockContended) as exc_info:
            contender.acquire()

        assert exc_info.value.holder == holder.candidate.name
        assert contender.state is LockState.UNACQUIRED
        assert _lock_nodes(contender_store) == [holder.candidate.name]
        holder.release()

    def test_try_acquire(self, session_factory) -> None:
        holder = Lock(session_factory(), "jobs")
        other = Lock(session_factory(), "jobs")
        holder.acquire()

        assert other.try_acquire() is False
        holder.release()
        assert other.try_acquire() is True
        other.release()

    def test_other_lock_names_do_not_contend(self, session_factory) -> None:
        first = Lock(session_factory(), "alpha", non_blocking=True)
        second = Lock(session_factory(), "beta", non_blocking=True)
        first.acquire()
        second.acquire()
        assert first.held and second.held
        first.release()
        second.release()

    def test_mutual_exclusion(self, session_factory) -> None:
        workers = 6
        rounds = 3
        locks = [Lock(session_factory(), "shared") for _ in range(workers)]
        guard = threading.Lock()
        state = {"active": 0, "max_active": 0, "entries": 0}
        errors = []

        def _worker(lock: Lock) -> None:
            try:
                for _ in range(rounds):
                    with lock:
                        with guard:
                            state["active"] += 1
                            state["entries"] += 1
                            state["max_active"] = max(state["max_active"], state["active"])
                        time.sleep(0.005)
                        with guard:
                            state["active"] -= 1
            except Exception as e:  # pragma: no cover - failure path
                errors.append(e)

        threads = [start_thread(_worker, lock) for lock in locks]
        for thread in threads:
            thread.join(timeout=20)

        assert errors == []
        assert state["entries"] == workers * rounds
        assert state["max_active"] == 1

    def test_ownership_passes_in_sequence_order(self, session_factory) -> None:
        holder = Lock(session_factory(), "ordered")
        holder.acquire()
        order = []
        waiters = []

        for index in range(4):
            lock = Lock(session_factory(), "ordered")

            def _wait_turn(lock: Lock = lock, index: int = index) -> None:
                with lock:
                    order.append(index)

            waiters.append(start_thread(_wait_turn))
            # Let this waiter enter the queue before the next one starts.
            assert wait_until(lambda lock=lock: lock.candidate is not None)

        holder.release()
        for thread in waiters:
            thread.join(timeout=10)

        assert order == [0, 1, 2, 3]

    def test_leaving_middle_waiter_does_not_skip_order(self, session_factory) -> None:
        holder = Lock(session_factory(), "gap")
        holder.acquire()
        middle = Lock(session_factory(), "gap", wait_timeout_ms=200)
        last = Lock(session_factory(), "gap")
        outcome: dict = {}

        middle_thread = _run_acquire(middle, {})
        assert wait_until(lambda: middle.candidate is not None)
        last_thread = _run_acquire(last, outcome)
        assert wait_until(lambda: last.candidate is not None)

        # The middle waiter times out and leaves; last must keep waiting on the holder.
        middle_thread.join(timeout=5)
        assert middle.candidate is None
        time.sleep(0.05)
        assert last.state is LockState.ACQUIRING

        holder.release()
        last_thread.join(timeout=5)
        assert outcome == {"result": True}
        last.release()

    def test_session_loss_releases_implicitly(self, session_factory) -> None:
        holder_store = session_factory()
        holder = Lock(holder_store, "jobs")
        holder.acquire()
        waiter = Lock(session_factory(), "jobs")
        outcome: dict = {}

        thread = _run_acquire(waiter, outcome)
        assert wait_until(lambda: waiter.candidate is not None)
        holder_store.expire()
        thread.join(timeout=5)

        assert outcome == {"result": True}
        assert waiter.held
        waiter.release()

    def test_connection_blip_reevaluates_and_keeps_waiting(self, session_factory) -> None:
        holder = Lock(session_factory(), "jobs")
        holder.acquire()
        waiter_store = session_factory()
        waiter = Lock(waiter_store, "jobs")
        outcome: dict = {}

        thread = _run_acquire(waiter, outcome)
        assert wait_until(lambda: waiter.gate.waiting and waiter_store.ensemble._watches)
        waiter_store.simulate_disconnect()
        time.sleep(0.05)
        assert waiter.state is LockState.ACQUIRING

        holder.release()
        thread.join(timeout=5)
        assert outcome == {"result": True}
        waiter.release()


class TestFailurePaths:
    """Every failed attempt surfaces an error and leaves no candidate behind"""

    def test_wait_timeout_removes_candidate(self, session_factory) -> None:
        holder = Lock(session_factory(), "jobs")
        holder.acquire()
        waiter_store = session_factory()
        waiter = Lock(waiter_store, "jobs", wait_timeout_ms=100)

        start = time.monotonic()
        with pytest.raises(WaitTimeout) as exc_info:
            waiter.acquire()
        elapsed = time.monotonic() - start

        assert 0.09 <= elapsed < 0.3
        assert exc_info.value.timeout_ms == 100
        assert exc_info.value.predecessor == holder.candidate.full_path
        assert exc_info.value.lock_path == "/lock/jobs"
        assert waiter.state is LockState.UNACQUIRED
        assert _lock_nodes(waiter_store) == [holder.candidate.name]
        holder.release()

    def test_zero_timeout_fails_fast_when_contended(self, session_factory) -> None:
        holder = Lock(session_factory(), "jobs")
        holder.acquire()
        waiter = Lock(session_factory(), "jobs")

        with pytest.raises(WaitTimeout):
            waiter.acquire(timeout_ms=0)
        holder.release()

    def test_deadline_spent_in_store_calls_skips_the_wait(
        self, session_factory, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        holder = Lock(session_factory(), "jobs")
        holder.acquire()
        waiter_store = session_factory()
        waiter = Lock(waiter_store, "jobs", wait_timeout_ms=50)
        evaluate = waiter.contender.evaluate
        waits = []

        def _slow_evaluate(candidate):
            standing = evaluate(candidate)
            time.sleep(0.1)
            return standing

        monkeypatch.setattr(waiter.contender, "evaluate", _slow_evaluate)
        monkeypatch.setattr(waiter.gate, "wait", lambda *args, **kwargs: waits.append(args))

        with pytest.raises(WaitTimeout) as exc_info:
            waiter.acquire()

        assert waits == []
        assert exc_info.value.timeout_ms == 50
        assert _lock_nodes(waiter_store) == [holder.candidate.name]
        holder.release()

    def test_cancel_interrupts_blocking_acquire(self, session_factory) -> None:
        holder = Lock(session_factory(), "jobs")
        holder.acquire()
        waiter_store = session_factory()
        waiter = Lock(waiter_store, "jobs")
        outcome: dict = {}

        thread = _run_acquire(waiter, outcome)
        assert wait_until(lambda: waiter.gate.waiting)
        waiter.cancel()
        thread.join(timeout=5)

        assert isinstance(outcome.get("error"), AcquireCancelled)
        assert waiter.state is LockState.UNACQUIRED
        assert _lock_nodes(waiter_store) == [holder.candidate.name]
        holder.release()

    def test_release_while_acquiring_cancels_and_cleans_up(self, session_factory) -> None:
        holder = Lock(session_factory(), "jobs")
        holder.acquire()
        waiter_store = session_factory()
        waiter = Lock(waiter_store, "jobs")
        outcome: dict = {}

        thread = _run_acquire(waiter, outcome)
        assert wait_until(lambda: waiter.gate.waiting)
        waiter.release()

        # release() returns only after the attempt withdrew its candidate.
        assert _lock_nodes(waiter_store) == [holder.candidate.name]
        thread.join(timeout=5)
        assert isinstance(outcome.get("error"), AcquireCancelled)
        holder.release()

    def test_concurrent_acquire_on_same_handle_is_rejected(self, session_factory) -> None:
        holder = Lock(session_factory(), "jobs")
        holder.acquire()
        waiter = Lock(session_factory(), "jobs")
        outcome: dict = {}

        thread = _run_acquire(waiter, outcome)
        assert wait_until(lambda: waiter.state is LockState.ACQUIRING)
        with pytest.raises(LockStateError):
            waiter.acquire()

        waiter.cancel()
        thread.join(timeout=5)
        holder.release()

    def test_own_candidate_deleted_externally_is_invariant_violation(self, session_factory) -> None:
        holder = Lock(session_factory(), "jobs")
        holder.acquire()
        admin = session_factory()
        waiter = Lock(session_factory(), "jobs")
        outcome: dict = {}

        thread = _run_acquire(waiter, outcome)
        assert wait_until(lambda: waiter.gate.waiting and admin.ensemble._watches)
        admin.delete(waiter.candidate.full_path)
        holder.release()
        thread.join(timeout=5)

        assert isinstance(outcome.get("error"), InvariantViolation)
        assert waiter.state is LockState.UNACQUIRED

    def test_candidate_creation_failure_is_not_retried(self, store: MemoryStore, monkeypatch) -> None:
        lock = Lock(store, "jobs")
        calls = {"count": 0}
        original_create = store.create

        def _flaky_create(path: str, data: bytes = b"", **kwargs) -> str:
            if kwargs.get("sequential"):
                calls["count"] += 1
                raise StoreUnavailableError("connection lost", path=path)
            return original_create(path, data, **kwargs)

        monkeypatch.setattr(store, "create", _flaky_create)
        with pytest.raises(AcquisitionFailed):
            lock.acquire()
        assert calls["count"] == 1
        assert lock.state is LockState.UNACQUIRED


class TestHeldChecks:
    """Detecting a lock lost behind the handle's back"""

    def test_ensure_held_detects_deleted_node(self, session_factory) -> None:
        lock = Lock(session_factory(), "jobs")
        lock.acquire()
        lock.ensure_held()

        session_factory().delete(lock.candidate.full_path)

        assert lock.is_held() is False
        with pytest.raises(LockLost):
            lock.ensure_held()
        assert lock.state is LockState.RELEASED
        lock.release()

    def test_ensure_held_requires_held_state(self, store: MemoryStore) -> None:
        with pytest.raises(LockStateError):
            Lock(store, "jobs").ensure_held()

    def test_contenders_lists_queue_in_rank_order(self, session_factory) -> None:
        holder = Lock(session_factory(), "jobs", identifier="holder")
        holder.acquire()
        waiter = Lock(session_factory(), "jobs", identifier="waiter")
        outcome: dict = {}
        thread = _run_acquire(waiter, outcome)
        assert wait_until(lambda: waiter.candidate is not None)

        queue = holder.contenders()

        assert [info.identifier for _, info in queue] == ["holder", "waiter"]
        assert queue[0][0] == holder.candidate
        waiter.cancel()
        thread.join(timeout=5)
        holder.release()
