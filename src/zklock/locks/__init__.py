"""Lock protocol over a coordination store.

This package holds the pieces of the sequential-node lock recipe: namespace
creation, the contender that ranks the queue, the wait gate that suspends on
a predecessor, and the public :class:`Lock` handle tying them together.
"""

from zklock.locks.contender import CandidateNode, Contender, ContenderInfo, SiblingSet, Standing
from zklock.locks.gate import WaitGate
from zklock.locks.lock import Lock, LockState, locked
from zklock.locks.namespace import ensure_path

__all__ = [
    "CandidateNode",
    "Contender",
    "ContenderInfo",
    "Lock",
    "LockState",
    "SiblingSet",
    "Standing",
    "WaitGate",
    "ensure_path",
    "locked",
]
