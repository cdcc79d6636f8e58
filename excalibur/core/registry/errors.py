"""
Error taxonomy for the registry storage engine.

Callers only need to tell failures apart by kind:
- NotFoundError: the record or path does not exist (never retried)
- ConflictError: a version-token precondition failed on write
- ReadError / WriteError: the backing store failed for another reason
- PartialUploadError: a multi-step upload stopped part way through
"""

from typing import Optional


class StorageError(Exception):
    """Base class for every failure raised by the storage engine."""
    pass


class NotFoundError(StorageError):
    """Raised when a referenced record or path does not exist."""
    pass


class ConflictError(StorageError):
    """
    Raised when a write's version token no longer matches the file.

    The registry store retries these internally; when it gives up,
    `attempts` records how many writes were tried.
    """

    def __init__(self, message: str, attempts: int = 1) -> None:
        super().__init__(message)
        self.attempts = attempts


class ReadError(StorageError):
    """Raised when reading from the backing store fails."""
    pass


class WriteError(StorageError):
    """Raised when a write fails for a reason other than a conflict."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PartialUploadError(StorageError):
    """
    Raised when the upload pipeline stops after some steps succeeded.

    Retrying the whole upload with the same asset id is safe: every
    write for an id targets the same paths.
    """

    def __init__(self, asset_id: str, step: str, cause: Exception) -> None:
        super().__init__(f"Upload of {asset_id} failed at step '{step}': {cause}")
        self.asset_id = asset_id
        self.step = step
        self.cause = cause
