"""Pytest configuration and fixtures for zklock tests"""

import threading
import time

import pytest

from zklock.store.memory import MemoryEnsemble


@pytest.fixture
def ensemble():
    """A fresh in-process store tree"""
    return MemoryEnsemble()


@pytest.fixture
def session_factory(ensemble):
    """Open store sessions on the shared ensemble; all are closed at teardown"""
    sessions = []

    def _open():
        session = ensemble.connect()
        sessions.append(session)
        return session

    yield _open

    for session in sessions:
        session.close()


@pytest.fixture
def store(session_factory):
    """A single store session"""
    return session_factory()


def wait_until(predicate, timeout: float = 3.0, interval: float = 0.01) -> bool:
    """Poll ``predicate`` in tests until it is true or ``timeout`` passes"""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def start_thread(target, *args, name: str | None = None) -> threading.Thread:
    thread = threading.Thread(target=target, args=args, daemon=True, name=name)
    thread.start()
    return thread
