"""Constants and default values for zklock.

This module centralizes defaults and environment variable names used
throughout the package.
"""

# ==================== LOCK DEFAULTS ====================

DEFAULT_NAMESPACE_ROOT: str = "/lock"
DEFAULT_WAIT_TIMEOUT_MS: int = 86_400_000  # 24 hours
DEFAULT_CREATE_NAMESPACE: bool = True
DEFAULT_NON_BLOCKING: bool = False

# Payload written to namespace nodes; the protocol never reads it back
NAMESPACE_NODE_DATA: bytes = b"0"

# Separator between the lock name and the store-assigned sequence suffix
SEQUENCE_SEPARATOR: str = "-"

# Width of sequence suffixes produced by ZooKeeper (and by MemoryStore)
SEQUENCE_WIDTH: int = 10

# ==================== STORE DEFAULTS ====================

DEFAULT_STORE_BACKEND: str = "kazoo"
DEFAULT_HOSTS: str = "127.0.0.1:2181"
DEFAULT_SESSION_TIMEOUT: float = 10.0  # seconds
DEFAULT_CONNECT_TIMEOUT: float = 15.0  # seconds

# ==================== LOGGING DEFAULTS ====================

LOG_FORMAT_TEXT: str = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

# ==================== CLI ====================

# sysexits.h EX_TEMPFAIL: lock contended or timed out, try again later
EXIT_LOCK_UNAVAILABLE: int = 75
EXIT_CONFIG_ERROR: int = 2
EXIT_STORE_ERROR: int = 1

# ==================== ENVIRONMENT ====================

ENV_STORE_BACKEND = "ZKLOCK_STORE_BACKEND"
ENV_HOSTS = "ZKLOCK_HOSTS"
ENV_SESSION_TIMEOUT = "ZKLOCK_SESSION_TIMEOUT"
ENV_CONNECT_TIMEOUT = "ZKLOCK_CONNECT_TIMEOUT"
ENV_READ_ONLY = "ZKLOCK_READ_ONLY"
ENV_NAMESPACE_ROOT = "ZKLOCK_NAMESPACE_ROOT"
ENV_WAIT_TIMEOUT_MS = "ZKLOCK_WAIT_TIMEOUT_MS"
ENV_CREATE_NAMESPACE = "ZKLOCK_CREATE_NAMESPACE"
ENV_NON_BLOCKING = "ZKLOCK_NON_BLOCKING"
