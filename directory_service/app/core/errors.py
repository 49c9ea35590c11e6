"""
Error taxonomy for the directory core.

Every failure raised by the stores is a ``DirectoryError`` subclass
carrying a stable ``code`` and a ``retryable`` flag.  ``StorageError``
and ``OrphanPendingError`` may be retried verbatim; validation,
not‑found and conflict errors are terminal for the request.  The HTTP
layer maps each class to a status code via ``status_code``.
"""

from typing import Optional


class DirectoryError(Exception):
    """Base class for all errors reported by the directory core."""

    code = "directory_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(DirectoryError):
    """A required field is missing or a value is not allowed."""

    code = "validation"
    status_code = 422


class NotFoundError(DirectoryError):
    """The referenced service or instance does not exist (or was retired)."""

    code = "not_found"
    status_code = 404

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} {identifier} not found")
        self.kind = kind
        self.identifier = identifier


class ConflictError(DirectoryError):
    """Duplicate identity on creation, or a delete blocked by references."""

    code = "conflict"
    status_code = 409


class StorageError(DirectoryError):
    """The backing store failed; the operation made no mutation and may be retried."""

    code = "storage"
    status_code = 503
    retryable = True

    def __init__(self, operation: str, cause: Optional[BaseException] = None) -> None:
        message = f"storage failure during {operation}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.operation = operation


class DeadlineExceededError(StorageError):
    """The caller's deadline passed before the store acknowledged the write."""

    code = "deadline_exceeded"

    def __init__(self, operation: str) -> None:
        super().__init__(operation)
        self.message = f"deadline exceeded during {operation}"
        self.args = (self.message,)


class OrphanPendingError(DirectoryError):
    """The instance is archived but its live row could not be removed yet.

    Retrying ``retire`` completes the removal without writing a second
    history record.
    """

    code = "orphan_pending"
    status_code = 503
    retryable = True

    def __init__(self, instance_id: str, history_id: str, cause: Optional[BaseException] = None) -> None:
        message = f"instance {instance_id} archived as {history_id} but still live"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.instance_id = instance_id
        self.history_id = history_id
