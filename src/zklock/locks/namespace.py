"""Namespace materialization for lock directories."""

from __future__ import annotations

import logging

from zklock.core.constants import NAMESPACE_NODE_DATA
from zklock.core.exceptions import NodeExistsError
from zklock.store.base import CoordinationStore

logger = logging.getLogger(__name__)


def path_prefixes(path: str) -> list[str]:
    """Cumulative prefixes of ``path``, parent before child.

    ``/a/b/c`` yields ``["/a", "/a/b", "/a/b/c"]``.
    """
    parts = [part for part in path.strip("/").split("/") if part]
    return ["/" + "/".join(parts[: i + 1]) for i in range(len(parts))]


def ensure_path(store: CoordinationStore, path: str) -> list[str]:
    """Make sure every node of ``path`` exists as a persistent node.

    Safe to run concurrently from many processes: losing the creation race
    to another contender counts as success. Returns the prefixes this call
    actually created.
    """
    created = []
    for prefix in path_prefixes(path):
        if store.exists(prefix):
            continue
        try:
            store.create(prefix, NAMESPACE_NODE_DATA)
        except NodeExistsError:
            logger.debug("Namespace node %s appeared concurrently", prefix)
            continue
        created.append(prefix)
        logger.debug("Created namespace node %s", prefix)
    return created
