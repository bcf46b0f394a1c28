"""Custom exceptions for zklock.

Every error raised by the lock protocol derives from :class:`ZKLockError` so
callers can catch the whole family in one place. Store errors live in the same
hierarchy and are raised by the store adapters.
"""


class ZKLockError(Exception):
    """Base exception for all zklock errors."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ConfigurationError(ZKLockError):
    """Exception raised for invalid lock or store configuration.

    Examples:
        - Namespace root not starting with "/"
        - Lock name containing "/"
        - Negative wait timeout
    """

    def __init__(self, message: str, field: str | None = None, details: str | None = None):
        self.field = field
        super().__init__(message, details)


class LockError(ZKLockError):
    """Base exception for failures of a lock attempt or a held lock."""

    def __init__(self, message: str, lock_path: str | None = None, details: str | None = None):
        self.lock_path = lock_path
        super().__init__(message, details)


class AcquisitionFailed(LockError):
    """Raised when the candidate node could not be created.

    The attempt is not retried internally; the caller decides whether to
    start a new one.
    """


class LockContended(LockError):
    """Raised in non-blocking mode when a lower-ranked contender exists.

    Attributes:
        holder: Name of the lowest-ranked contender at the time of evaluation
    """

    def __init__(self, lock_path: str, holder: str | None = None):
        self.holder = holder
        details = f"held by {holder}" if holder else None
        super().__init__(f"Lock '{lock_path}' is already taken", lock_path, details)


class WaitTimeout(LockError):
    """Raised when a blocking acquire exceeds its wait timeout.

    Attributes:
        timeout_ms: Configured timeout of the attempt in milliseconds
        predecessor: Path of the node that was being waited on, if any
    """

    def __init__(self, lock_path: str, timeout_ms: int, predecessor: str | None = None):
        self.timeout_ms = timeout_ms
        self.predecessor = predecessor
        details = f"waiting on {predecessor}" if predecessor else None
        super().__init__(f"Timed out after {timeout_ms}ms acquiring '{lock_path}'", lock_path, details)


class InvariantViolation(LockError):
    """Raised when the contender's own node is missing from the sibling listing.

    This means the store is inconsistent or the candidate was deleted by
    someone else. It is never retried.
    """


class AcquireCancelled(LockError):
    """Raised when an in-flight acquire is cancelled or the lock is released mid-wait."""


class LockStateError(LockError):
    """Raised when an operation is not valid in the lock's current state."""


class LockLost(LockError):
    """Raised when a lock believed held no longer has its node in the store.

    Usually the store session expired and the ephemeral node went with it.
    """


class StoreError(ZKLockError):
    """Base exception for coordination store failures.

    Attributes:
        path: Node path the failed operation targeted
        original_error: Exception raised by the underlying client, if any
    """

    def __init__(
        self,
        message: str,
        path: str | None = None,
        details: str | None = None,
        original_error: Exception | None = None,
    ):
        self.path = path
        self.original_error = original_error
        super().__init__(message, details)


class NodeExistsError(StoreError):
    """Raised when creating a non-sequential node that already exists."""


class NoNodeError(StoreError):
    """Raised when an operation targets a node (or parent) that does not exist."""


class NotEmptyError(StoreError):
    """Raised when deleting a node that still has children."""


class StoreUnavailableError(StoreError):
    """Raised on connection loss, session expiry, timeouts or a closed session."""
