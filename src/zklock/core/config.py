"""Configuration dataclasses for zklock.

These dataclasses centralize the options of a lock and of the store
connection. They can be created directly in code or from environment
variables (a ``.env`` file is loaded first when present).
"""

from __future__ import annotations

import logging
import math
import os
from collections.abc import Callable
from dataclasses import dataclass, fields
from typing import Any

from dotenv import load_dotenv

from zklock.core.constants import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_CREATE_NAMESPACE,
    DEFAULT_HOSTS,
    DEFAULT_NAMESPACE_ROOT,
    DEFAULT_NON_BLOCKING,
    DEFAULT_SESSION_TIMEOUT,
    DEFAULT_WAIT_TIMEOUT_MS,
    ENV_CONNECT_TIMEOUT,
    ENV_CREATE_NAMESPACE,
    ENV_HOSTS,
    ENV_NAMESPACE_ROOT,
    ENV_NON_BLOCKING,
    ENV_READ_ONLY,
    ENV_SESSION_TIMEOUT,
    ENV_WAIT_TIMEOUT_MS,
)
from zklock.core.exceptions import ConfigurationError

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_env_numeric(value: str | None, cast: Callable[[str], Any]) -> Any | None:
    """Parse an environment value, returning None when invalid."""
    if value is None:
        return None
    try:
        parsed = cast(value)
    except (TypeError, ValueError):
        return None
    if isinstance(parsed, float) and not math.isfinite(parsed):
        return None
    return parsed


def _parse_env_bool(value: str | None) -> bool | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    return None


def _bootstrap_dotenv(logger: logging.Logger) -> None:
    """Load .env variables without overriding the real environment."""
    try:
        if load_dotenv():
            logger.debug(".env file found and loaded")
    except OSError as e:
        logger.debug("Failed to load .env via python-dotenv: %s", e)


@dataclass(frozen=True)
class LockConfig:
    """Configuration of a single lock.

    Attributes:
        lock_name: Token identifying the lock under the namespace (no "/")
        namespace_root: Directory node holding the contention queue (default: "/lock")
        create_namespace: Create the namespace chain before contending (default: True)
        wait_timeout_ms: Overall deadline of a blocking acquire (default: 24h)
        non_blocking: Fail with LockContended instead of waiting (default: False)
    """

    lock_name: str
    namespace_root: str = DEFAULT_NAMESPACE_ROOT
    create_namespace: bool = DEFAULT_CREATE_NAMESPACE
    wait_timeout_ms: int = DEFAULT_WAIT_TIMEOUT_MS
    non_blocking: bool = DEFAULT_NON_BLOCKING

    def __post_init__(self) -> None:
        root = self.namespace_root
        if not isinstance(root, str) or not root.startswith("/"):
            raise ConfigurationError(
                "namespace_root must start with '/'", field="namespace_root", details=repr(root)
            )
        root = root.rstrip("/")
        if not root or "//" in root:
            raise ConfigurationError(
                "namespace_root must name at least one node", field="namespace_root", details=repr(self.namespace_root)
            )
        object.__setattr__(self, "namespace_root", root)

        if not isinstance(self.lock_name, str) or not self.lock_name:
            raise ConfigurationError("lock_name must be a non-empty string", field="lock_name")
        if "/" in self.lock_name:
            raise ConfigurationError("lock_name must not contain '/'", field="lock_name", details=repr(self.lock_name))

        timeout = self.wait_timeout_ms
        if isinstance(timeout, bool) or not isinstance(timeout, int) or timeout < 0:
            raise ConfigurationError(
                "wait_timeout_ms must be a non-negative integer", field="wait_timeout_ms", details=repr(timeout)
            )

    @property
    def wait_timeout(self) -> float:
        """Wait timeout in seconds."""
        return self.wait_timeout_ms / 1000.0

    @property
    def candidate_prefix(self) -> str:
        """Path passed to the sequential create; the store appends the rank."""
        return f"{self.namespace_root}/{self.lock_name}-"

    @classmethod
    def from_env(cls, lock_name: str, **overrides: Any) -> LockConfig:
        """Create configuration from environment variables.

        Explicit keyword overrides win over the environment. Invalid
        environment values are ignored with a warning.
        """
        logger = logging.getLogger(__name__)
        _bootstrap_dotenv(logger)
        values: dict[str, Any] = {}

        root = os.environ.get(ENV_NAMESPACE_ROOT)
        if root:
            values["namespace_root"] = root

        parsed_timeout = _parse_env_numeric(os.environ.get(ENV_WAIT_TIMEOUT_MS), int)
        if parsed_timeout is not None and parsed_timeout >= 0:
            values["wait_timeout_ms"] = parsed_timeout
        elif ENV_WAIT_TIMEOUT_MS in os.environ:
            logger.warning(
                "Ignoring invalid %s=%r; using default %s",
                ENV_WAIT_TIMEOUT_MS,
                os.environ.get(ENV_WAIT_TIMEOUT_MS),
                DEFAULT_WAIT_TIMEOUT_MS,
            )

        for env_name, field_name in ((ENV_CREATE_NAMESPACE, "create_namespace"), (ENV_NON_BLOCKING, "non_blocking")):
            parsed_flag = _parse_env_bool(os.environ.get(env_name))
            if parsed_flag is not None:
                values[field_name] = parsed_flag
            elif env_name in os.environ:
                logger.warning("Ignoring invalid %s=%r", env_name, os.environ.get(env_name))

        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigurationError("Unknown lock option", details=", ".join(sorted(unknown)))
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(lock_name=lock_name, **values)


@dataclass
class StoreConfig:
    """Configuration of the coordination store connection.

    Attributes:
        hosts: Comma-separated host:port list (default: "127.0.0.1:2181")
        session_timeout: Session timeout in seconds (default: 10.0)
        connect_timeout: Time allowed for the initial connection (default: 15.0)
        read_only: Allow connecting to read-only servers (default: False)
    """

    hosts: str = DEFAULT_HOSTS
    session_timeout: float = DEFAULT_SESSION_TIMEOUT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    read_only: bool = False

    def __post_init__(self) -> None:
        if not self.hosts or not self.hosts.strip():
            raise ConfigurationError("hosts must not be empty", field="hosts")
        if self.session_timeout <= 0:
            raise ConfigurationError("session_timeout must be positive", field="session_timeout")
        if self.connect_timeout <= 0:
            raise ConfigurationError("connect_timeout must be positive", field="connect_timeout")

    @classmethod
    def from_env(cls) -> StoreConfig:
        """Create store configuration from environment variables."""
        logger = logging.getLogger(__name__)
        _bootstrap_dotenv(logger)
        cfg: dict[str, Any] = {}

        hosts = os.environ.get(ENV_HOSTS)
        if hosts and hosts.strip():
            cfg["hosts"] = hosts.strip()

        for env_name, field_name, default in (
            (ENV_SESSION_TIMEOUT, "session_timeout", DEFAULT_SESSION_TIMEOUT),
            (ENV_CONNECT_TIMEOUT, "connect_timeout", DEFAULT_CONNECT_TIMEOUT),
        ):
            parsed = _parse_env_numeric(os.environ.get(env_name), float)
            if parsed is not None and parsed > 0:
                cfg[field_name] = parsed
            elif env_name in os.environ:
                logger.warning("Ignoring invalid %s=%r; using default %s", env_name, os.environ.get(env_name), default)

        read_only = _parse_env_bool(os.environ.get(ENV_READ_ONLY))
        if read_only is not None:
            cfg["read_only"] = read_only
        elif ENV_READ_ONLY in os.environ:
            logger.warning("Ignoring invalid %s=%r", ENV_READ_ONLY, os.environ.get(ENV_READ_ONLY))

        return cls(**cfg)
